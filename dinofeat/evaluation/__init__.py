# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Reference comparison for extracted features.

Answers whether a loaded checkpoint reproduces features computed by another
implementation: cosine similarity, relative L2 error and elementwise
closeness, collected into per-tensor reports.
"""
