# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Slack marketplace bot.

Turns a single button click into a moderated, self-expiring classified-ad
thread and sweeps stale listings on a schedule.
"""
