"""
Error types raised while loading projects and rendering cards.
"""


class CardSheetError(Exception):
	"""Base class for every error raised by this package."""


class ConfigurationError(CardSheetError):
	"""Invalid project configuration, sheet definition or command line input."""


class ParseError(CardSheetError):
	"""A layout or configuration file could not be read."""

	def __init__(self, message: str, path: str | None = None, line: int | None = None):
		self.path = path
		self.line = line
		location = ""
		if path is not None:
			location = f"{path}: "
			if line is not None:
				location = f"{path}:{line}: "
		super().__init__(f"{location}{message}")


class ColorParseError(ParseError):
	"""A color literal with a malformed component."""


class DashPatternError(ParseError):
	"""A dash pattern containing a character outside '.', '-' and space."""

	def __init__(self, character: str, pattern: str, offset: int):
		self.character = character
		self.pattern = pattern
		self.offset = offset
		super().__init__(f"invalid character {character!r} at offset {offset} in dash pattern {pattern!r}")


class ResolutionError(CardSheetError):
	"""A name used by a card could not be resolved."""


class InvalidColorName(ResolutionError):
	def __init__(self, name: str):
		self.name = name
		super().__init__(f"unknown color name {name!r}")


class NoSuchCard(ResolutionError):
	def __init__(self, card_id: str):
		self.card_id = card_id
		super().__init__(f"no card with id {card_id!r}")


class NoLayoutFound(ResolutionError):
	def __init__(self, layout_name: str, card_id: str):
		self.layout_name = layout_name
		self.card_id = card_id
		super().__init__(f"card {card_id!r} uses unknown layout {layout_name!r}")


class EmptyWorkbook(ResolutionError):
	def __init__(self, path: str):
		self.path = path
		super().__init__(f"workbook has no sheets: {path}")


class TemplateError(CardSheetError):
	"""A template failed to compile or render."""

	def __init__(self, message: str, source: str, offset: int | None = None):
		self.source = source
		self.offset = offset
		detail = message
		if offset is not None:
			detail = f"{message} (at offset {offset})"
		super().__init__(f"{detail} in template {source!r}")


class RenderError(CardSheetError):
	"""The graphics backend failed to produce output for a card."""
