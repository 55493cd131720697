# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI exit codes.

USER_ERROR covers bad arguments and unreadable inputs, CONFIG_ERROR a bad
config.json, RUNTIME_ERROR failures while loading or running the model, and
VALIDATION_ERROR a feature comparison that did not pass.
"""

SUCCESS: int = 0
USER_ERROR: int = 1
CONFIG_ERROR: int = 2
RUNTIME_ERROR: int = 3
VALIDATION_ERROR: int = 4
