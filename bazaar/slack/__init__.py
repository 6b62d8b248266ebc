# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Slack integration for the marketplace bot.

Provides Slack-specific implementations of the core collaborators:
- SlackThreadService: ThreadService backed by channel messages
- StaffResolver: Staff rule evaluation with cached API data
- SlackAuditSink: Audit log posting to a channel
- InteractionRouter: Button/modal dispatch to the lifecycle engine
"""
