"""
Card records, tabular loaders and selection lists.
"""

# Standard Library
import csv
import functools
import logging
import pathlib
import types
import typing

# PIP3 modules
import openpyxl

# local repo modules
import card_sheet_renderer as csr
import card_sheet_renderer.errors


ConfigurationError = csr.errors.ConfigurationError
EmptyWorkbook = csr.errors.EmptyWorkbook

logger = logging.getLogger(__name__)

ID_FIELD = "id"
LAYOUT_FIELD = "layout"


class Card:
	"""
	One data record: an identifier plus an immutable field mapping.
	"""

	def __init__(self, card_id: str, fields: typing.Mapping[str, str]):
		self.id = card_id
		self.fields = types.MappingProxyType(dict(fields))

	@property
	def layout_name(self) -> str | None:
		value = self.fields.get(LAYOUT_FIELD, "")
		if not value or not value.strip():
			return None
		return value.strip()

	@functools.cached_property
	def template_context(self) -> dict[str, typing.Any]:
		# Built at most once per card; a concurrent first access may build it
		# twice and keep either copy, both are equal.
		context: dict[str, typing.Any] = dict(self.fields)
		context[ID_FIELD] = self.id
		context["card"] = dict(context)
		return context

	def __repr__(self) -> str:
		return f"Card({self.id!r}, {len(self.fields)} fields)"


#============================================
def synthesize_card_id(stem: str | None, index: int) -> str:
	"""
	Build an identifier for a row with no id.

	Args:
		stem: Data file stem, if known.
		index: Zero-based row index.

	Returns:
		Identifier string.
	"""
	if stem:
		return f"{stem}_{index + 1:04d}"
	return f"{index + 1:04d}"


#============================================
def build_cards(rows: typing.Iterable[dict[str, str]], stem: str | None) -> list[Card]:
	"""
	Turn decoded rows into cards, synthesizing missing ids.

	Args:
		rows: Field mappings in file order.
		stem: Data file stem used for synthesized ids.

	Returns:
		List of Card instances.
	"""
	cards: list[Card] = []
	for index, row in enumerate(rows):
		fields = {key: value for key, value in row.items() if key != ID_FIELD}
		card_id = (row.get(ID_FIELD) or "").strip()
		if not card_id:
			card_id = synthesize_card_id(stem, index)
		cards.append(Card(card_id, fields))
	return cards


#============================================
def clean_cell(value: typing.Any) -> str:
	"""
	Convert a decoded cell into trimmed text.

	Args:
		value: Cell value from csv or openpyxl.

	Returns:
		Trimmed string, empty for missing cells.
	"""
	if value is None:
		return ""
	if isinstance(value, float) and value.is_integer():
		value = int(value)
	return str(value).strip()


#============================================
def read_rows(header: list[typing.Any], body: typing.Iterable[typing.Sequence[typing.Any]]) -> list[dict[str, str]]:
	"""
	Zip a header row with body rows, tolerating ragged rows.

	Args:
		header: Header cells.
		body: Remaining rows.

	Returns:
		Row mappings, with fully blank rows skipped.
	"""
	names = [clean_cell(cell) for cell in header]
	rows: list[dict[str, str]] = []
	for raw_row in body:
		values = [clean_cell(cell) for cell in raw_row]
		if not any(values):
			continue
		row: dict[str, str] = {}
		for index, name in enumerate(names):
			if not name:
				continue
			row[name] = values[index] if index < len(values) else ""
		rows.append(row)
	return rows


#============================================
def load_csv_cards(path: pathlib.Path) -> list[Card]:
	"""
	Load cards from a CSV file with a header row.

	Args:
		path: CSV file path.

	Returns:
		List of Card instances.
	"""
	with open(path, "r", encoding="utf-8-sig", newline="") as handle:
		reader = csv.reader(handle, skipinitialspace=True)
		header = next(reader, None)
		if header is None:
			logger.warning("CSV file has no header row: %s", path)
			return []
		rows = read_rows(header, reader)
	return build_cards(rows, path.stem)


#============================================
def load_excel_cards(path: pathlib.Path) -> list[Card]:
	"""
	Load cards from the first worksheet of an Excel workbook.

	Args:
		path: Workbook path.

	Returns:
		List of Card instances.
	"""
	workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
	try:
		if not workbook.worksheets:
			raise EmptyWorkbook(str(path))
		rows_iter = workbook.worksheets[0].iter_rows(values_only=True)
		header = next(rows_iter, None)
		if header is None:
			logger.warning("worksheet has no header row: %s", path)
			return []
		rows = read_rows(list(header), rows_iter)
	finally:
		workbook.close()
	return build_cards(rows, path.stem)


#============================================
def load_cards(path: pathlib.Path) -> list[Card]:
	"""
	Load cards from a data file, choosing the decoder by extension.

	Args:
		path: Data file path.

	Returns:
		List of Card instances.
	"""
	suffix = path.suffix.lower()
	if suffix == ".csv":
		return load_csv_cards(path)
	if suffix in (".xlsx", ".xlsm"):
		return load_excel_cards(path)
	raise ConfigurationError(f"unsupported data file type: {path}")


#============================================
def parse_selection(text: str) -> list[str]:
	"""
	Parse a selection list into a flat ordered list of card ids.

	Each line is either a bare id or "<quantity> <id>". Blank lines and lines
	starting with '#' are ignored.

	Args:
		text: Selection file contents.

	Returns:
		Card ids, repeated by quantity.
	"""
	selection: list[str] = []
	for line_number, raw_line in enumerate(text.splitlines(), start=1):
		line = raw_line.strip()
		if not line or line.startswith("#"):
			continue
		parts = line.split(maxsplit=1)
		quantity = 1
		card_id = line
		if len(parts) == 2 and parts[0].lstrip("+-").isdigit():
			quantity = int(parts[0])
			card_id = parts[1].strip()
			if quantity <= 0:
				raise ConfigurationError(f"selection line {line_number}: quantity must be positive, got {quantity}")
		selection.extend([card_id] * quantity)
	return selection
