#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Render card projects into PNG images, per-card PDFs and printable sheets.
"""

import sys

import card_sheet_renderer.cli


if __name__ == "__main__":
	sys.exit(card_sheet_renderer.cli.main())
