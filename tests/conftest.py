"""
Pytest configuration so card_sheet_renderer imports from a source checkout.
"""

# Standard Library
import os
import sys

#============================================


def _add_source_root() -> None:
	"""
	Put the directory holding card_sheet_renderer first on sys.path.
	"""
	source_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
	if source_root not in sys.path:
		sys.path.insert(0, source_root)


_add_source_root()
