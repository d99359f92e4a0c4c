"""
Rendering and imposition logic.
"""

# Standard Library
import concurrent.futures
import dataclasses
import io
import logging
import os
import pathlib
import tempfile
import threading
import typing

# PIP3 modules
import fitz
import PIL.Image
import pypdf
import pypdf.generic
import reportlab.lib.utils
import reportlab.pdfgen.canvas

# local repo modules
import card_sheet_renderer as csr
import card_sheet_renderer.colors
import card_sheet_renderer.conditions
import card_sheet_renderer.config
import card_sheet_renderer.errors
import card_sheet_renderer.layout
import card_sheet_renderer.markup
import card_sheet_renderer.painter
import card_sheet_renderer.project
import card_sheet_renderer.records
import card_sheet_renderer.sheets
import card_sheet_renderer.styles


Card = csr.records.Card
Color = csr.colors.Color
Frame = csr.layout.Frame
Geometry = csr.layout.Geometry
Layout = csr.layout.Layout
Project = csr.project.Project
Sheet = csr.sheets.Sheet
CardPlacement = csr.sheets.CardPlacement
FlatTextStyle = csr.styles.FlatTextStyle
LoadedImage = csr.painter.LoadedImage
TextRun = csr.painter.TextRun
PdfMetadata = csr.config.PdfMetadata
SheetResult = csr.config.SheetResult

CardSheetError = csr.errors.CardSheetError
ConfigurationError = csr.errors.ConfigurationError
RenderError = csr.errors.RenderError

POINTS_PER_INCH = csr.config.POINTS_PER_INCH
DEFAULT_TEXT_SIZE_PX = csr.config.DEFAULT_TEXT_SIZE_PX
CROP_LINE_WIDTH = csr.config.CROP_LINE_WIDTH
PLACEHOLDER_TEXT_SIZE_PT = csr.config.PLACEHOLDER_TEXT_SIZE_PT
PLACEHOLDER_STROKE_WIDTH = csr.config.PLACEHOLDER_STROKE_WIDTH

BLACK = csr.colors.BUILTIN_COLORS["black"]
WHITE = csr.colors.BUILTIN_COLORS["white"]
BLUE = csr.colors.BUILTIN_COLORS["blue"]

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class RenderedCard:
	card_id: str
	geometry: Geometry
	pdf_bytes: bytes


@dataclasses.dataclass(frozen=True)
class RenderFailure:
	card_id: str
	error: CardSheetError


class ImageStore:
	"""
	Decoded images keyed by name, loaded on first use.

	Safe to share between render threads. Two threads asking for the same new
	image at once may both decode it; only the first stored copy is kept.
	"""

	def __init__(self, project: Project):
		self.project = project
		self._images: dict[str, LoadedImage] = {}
		self._lock = threading.Lock()
		self.decode_count = 0

	def load(self, name: str) -> LoadedImage | None:
		"""
		Get a decoded image.

		Args:
			name: Image name as registered in the project.

		Returns:
			LoadedImage, or None when the project has no such image.
		"""
		with self._lock:
			cached = self._images.get(name)
		if cached is not None:
			return cached
		path = self.project.image_path(name)
		if path is None:
			return None
		logger.debug("loading image %r from %s", name, path)
		try:
			image = PIL.Image.open(path)
			image.load()
		except OSError as error:
			raise RenderError(f"cannot decode image {name!r} from {path}: {error}") from error
		if image.mode not in ("RGB", "RGBA", "L"):
			image = image.convert("RGBA")
		loaded = LoadedImage(reportlab.lib.utils.ImageReader(image), image.width, image.height)
		with self._lock:
			self.decode_count += 1
			return self._images.setdefault(name, loaded)


#============================================
def compute_image_rect(frame: Frame, image_width: float, image_height: float, scale: str) -> tuple[Frame, bool]:
	"""
	Place an image inside a frame.

	"fit" scales the image to fit inside the frame, "fill" scales it to cover
	the frame, "none" keeps its pixel size; all three center it on the frame.
	"stretch" fills the frame exactly.

	Args:
		frame: Target frame.
		image_width: Image width in pixels.
		image_height: Image height in pixels.
		scale: Scale mode.

	Returns:
		Tuple of (image rectangle, whether to clip to the frame).
	"""
	if scale == "stretch":
		return (frame, False)
	if scale == "fit":
		factor = min(frame.width / image_width, frame.height / image_height)
		clip = False
	elif scale == "fill":
		factor = max(frame.width / image_width, frame.height / image_height)
		clip = True
	elif scale == "none":
		factor = 1.0
		clip = True
	else:
		raise RenderError(f"invalid image scale mode {scale!r}")
	width = image_width * factor
	height = image_height * factor
	center_x, center_y = frame.center
	return (Frame(center_x - width / 2.0, center_y - height / 2.0, width, height), clip)


class CardRenderContext:
	"""
	Walk one card's layout tree and send paint calls to a painter.
	"""

	def __init__(self, project: Project, card: Card, layout: Layout, painter: typing.Any, images: ImageStore):
		self.project = project
		self.card = card
		self.layout = layout
		self.painter = painter
		self.images = images
		self.dpi = layout.geometry.dpi

	def resolve_color(self, color: csr.colors.ColorRef, card: Card) -> Color:
		return self.project.resolve_color(color, card)

	def draw_elements(self, elements: typing.Iterable[csr.layout.Element], frame_width: float, frame_height: float) -> None:
		"""
		Draw elements in document order inside the current frame.

		Args:
			elements: Elements to draw.
			frame_width: Width of the enclosing frame.
			frame_height: Height of the enclosing frame.
		"""
		for element in elements:
			if isinstance(element, csr.layout.Background):
				self.draw_shape(Frame(0.0, 0.0, frame_width, frame_height), element.styles)
			elif isinstance(element, csr.layout.Rectangle):
				self.draw_shape(element.frame, element.styles)
			elif isinstance(element, csr.layout.Text):
				self.draw_text(element)
			elif isinstance(element, csr.layout.Image):
				self.draw_image(element)
			elif isinstance(element, csr.layout.Box):
				self.draw_box(element)
			else:
				raise RenderError(f"cannot draw layout element {element!r}")

	def draw_shape(self, frame: Frame, styles: tuple[csr.styles.PathStyle, ...]) -> None:
		all_styles = self.layout.base_path_styles + styles
		resolved = csr.styles.resolve_path_style(all_styles, self.card, self.resolve_color)
		if resolved is None:
			return
		if resolved.fill is not None:
			self.painter.fill_rect(frame, resolved.fill)
		if resolved.has_stroke:
			self.painter.stroke_rect(frame, resolved.stroke_width, resolved.stroke_color, resolved.dashes)

	def draw_box(self, element: csr.layout.Box) -> None:
		frame = element.frame
		self.painter.save_state()
		self.painter.translate(frame.x, frame.y)
		self.painter.clip_rect(Frame(0.0, 0.0, frame.width, frame.height))
		self.draw_elements(element.children, frame.width, frame.height)
		self.painter.restore_state()

	def draw_image(self, element: csr.layout.Image) -> None:
		name = element.name.render(self.card)
		image = self.images.load(name)
		if image is None:
			logger.warning("card %r: image %r not found, drawing placeholder", self.card.id, name)
			self.draw_missing_image(element.frame, name)
			return
		rect, clip = compute_image_rect(element.frame, image.width, image.height, element.scale)
		if not clip:
			self.painter.draw_image(image, rect)
			return
		self.painter.save_state()
		self.painter.clip_rect(element.frame)
		self.painter.draw_image(image, rect)
		self.painter.restore_state()

	def draw_missing_image(self, frame: Frame, name: str) -> None:
		"""
		Draw a crossed-out box with the image name in it.

		Args:
			frame: Frame the image would have filled.
			name: Image name that failed to resolve.
		"""
		self.painter.save_state()
		self.painter.clip_rect(frame)
		self.painter.fill_rect(frame, WHITE)
		self.painter.stroke_rect(frame, PLACEHOLDER_STROKE_WIDTH, BLUE)
		right = frame.x + frame.width
		bottom = frame.y + frame.height
		self.painter.draw_line((frame.x, frame.y), (right, bottom), PLACEHOLDER_STROKE_WIDTH, BLUE)
		self.painter.draw_line((right, frame.y), (frame.x, bottom), PLACEHOLDER_STROKE_WIDTH, BLUE)
		size = PLACEHOLDER_TEXT_SIZE_PT * self.dpi / POINTS_PER_INCH
		run = TextRun(name, csr.painter.map_font_name(None, "normal", None), size, BLUE)
		self.painter.draw_text([run], frame, "left")
		self.painter.restore_state()

	def base_text_style(self, element: csr.layout.Text) -> FlatTextStyle:
		"""
		Cascade layout, named and inline styles for a text element.

		Args:
			element: Text element.

		Returns:
			FlatTextStyle for the element.
		"""
		style = FlatTextStyle().apply(self.layout.base_text_styles)
		if element.style_name:
			named = self.project.style_set(element.style_name)
			if named is None:
				logger.warning("card %r: unknown text style %r", self.card.id, element.style_name)
			else:
				style = style.apply(named)
		return style.apply(element.styles)

	def text_run(self, text: str, style: FlatTextStyle, icon: LoadedImage | None = None) -> TextRun:
		size = DEFAULT_TEXT_SIZE_PX
		if style.size is not None:
			size = style.size.to_pixels(self.dpi)
		color = BLACK
		if style.foreground is not None:
			color = self.resolve_color(style.foreground, self.card)
		background = None
		if style.background is not None:
			background = self.resolve_color(style.background, self.card)
		font_name = csr.painter.map_font_name(style.font_family, style.font_weight, style.font_slant)
		return TextRun(text, font_name, size, color, background, icon)

	def build_text_runs(self, instructions: list[csr.markup.Instruction], base: FlatTextStyle) -> list[TextRun]:
		"""
		Turn markup instructions into styled runs using a style stack.

		Args:
			instructions: Parsed markup.
			base: Cascaded style of the element.

		Returns:
			Styled runs in reading order.
		"""
		stack: list[tuple[str, FlatTextStyle]] = [("", base)]
		runs: list[TextRun] = []
		for instruction in instructions:
			top_name, top = stack[-1]
			if isinstance(instruction, csr.markup.AddText):
				runs.append(self.text_run(instruction.text, top))
			elif isinstance(instruction, csr.markup.PushStyle):
				styles = self.project.style_set(instruction.name)
				if styles is None:
					logger.warning("card %r: no style named %r, tag ignored", self.card.id, instruction.name)
					stack.append((instruction.name, top))
					continue
				pushed = top.apply(styles)
				added = pushed.conditions[len(top.conditions):]
				if not csr.conditions.all_conditions_hold(added, self.card):
					logger.warning("card %r: style <%s> failed its only-if rules, tag ignored", self.card.id, instruction.name)
					pushed = top
				stack.append((instruction.name, pushed))
			elif isinstance(instruction, csr.markup.PopStyle):
				if len(stack) == 1:
					logger.warning("card %r: closing tag </%s> with no open tag", self.card.id, instruction.name)
					continue
				if top_name != instruction.name:
					logger.warning(
						"card %r: closing tag </%s> does not match <%s>",
						self.card.id,
						instruction.name,
						top_name,
					)
				stack.pop()
			elif isinstance(instruction, csr.markup.InsertPlaceholder):
				icon = None
				if self.project.image_path(instruction.name) is not None:
					icon = self.images.load(instruction.name)
				if icon is None:
					logger.warning("card %r: no image for placeholder :%s:", self.card.id, instruction.name)
					runs.append(self.text_run(f":{instruction.name}:", top))
				else:
					runs.append(self.text_run("", top, icon))
			else:
				raise RenderError(f"unknown markup instruction {instruction!r}")
		return runs

	def draw_text(self, element: csr.layout.Text) -> None:
		base = self.base_text_style(element)
		if not csr.conditions.all_conditions_hold(base.conditions, self.card):
			return
		text = element.contents.render(self.card)
		runs = self.build_text_runs(csr.markup.parse_markup(text), base)
		if runs:
			self.painter.draw_text(runs, element.frame, base.align)


#============================================
def apply_canvas_metadata(pdf: reportlab.pdfgen.canvas.Canvas, metadata: PdfMetadata, title: str) -> None:
	"""
	Set document metadata on a ReportLab canvas.

	Args:
		pdf: Canvas to update.
		metadata: Project metadata.
		title: Title used when the project sets none.
	"""
	pdf.setTitle(metadata.title or title)
	if metadata.author:
		pdf.setAuthor(metadata.author)
	if metadata.subject:
		pdf.setSubject(metadata.subject)
	if metadata.keywords:
		pdf.setKeywords(metadata.keywords)
	pdf.setCreator(metadata.creator)


#============================================
def render_card(project: Project, card: Card, images: ImageStore) -> RenderedCard:
	"""
	Render one card to a single-page vector PDF in memory.

	Args:
		project: Loaded project.
		card: Card to render.
		images: Shared image store.

	Returns:
		RenderedCard holding the PDF bytes.
	"""
	layout = project.layout_for(card)
	geometry = layout.geometry
	page_size = (
		csr.config.pixels_to_points(geometry.width, geometry.dpi),
		csr.config.pixels_to_points(geometry.height, geometry.dpi),
	)
	buffer = io.BytesIO()
	pdf = reportlab.pdfgen.canvas.Canvas(buffer, pagesize=page_size)
	apply_canvas_metadata(pdf, project.metadata, card.id)
	painter = csr.painter.PdfPainter(pdf, geometry.height, geometry.dpi)
	context = CardRenderContext(project, card, layout, painter, images)
	context.draw_elements(layout.elements, geometry.width, geometry.height)
	pdf.showPage()
	pdf.save()
	return RenderedCard(card.id, geometry, buffer.getvalue())


#============================================
def render_cards(
	project: Project,
	cards: list[Card],
	images: ImageStore,
	jobs: int = 1,
	keep_going: bool = False,
	progress: typing.Callable[[int, int], None] | None = None,
) -> tuple[list[RenderedCard], list[RenderFailure]]:
	"""
	Render several cards, optionally on worker threads.

	Results come back in input order. Without keep_going the first error is
	raised; with it, failing cards are reported and skipped.

	Args:
		project: Loaded project.
		cards: Cards to render.
		images: Shared image store.
		jobs: Number of worker threads.
		keep_going: Whether to continue past failing cards.
		progress: Optional callback receiving (done, total).

	Returns:
		Tuple of (rendered cards, failures).
	"""
	def render_one(card: Card) -> RenderedCard | RenderFailure:
		if not keep_going:
			return render_card(project, card, images)
		try:
			return render_card(project, card, images)
		except CardSheetError as error:
			return RenderFailure(card.id, error)

	rendered: list[RenderedCard] = []
	failures: list[RenderFailure] = []
	total = len(cards)
	with concurrent.futures.ThreadPoolExecutor(max_workers=max(1, jobs)) as executor:
		for index, result in enumerate(executor.map(render_one, cards), start=1):
			if isinstance(result, RenderFailure):
				failures.append(result)
			else:
				rendered.append(result)
			if progress is not None:
				progress(index, total)
	return (rendered, failures)


#============================================
def write_output_atomically(path: pathlib.Path, data: bytes) -> None:
	"""
	Write a file through a temporary sibling and rename it into place.

	Args:
		path: Destination path.
		data: File contents.
	"""
	path.parent.mkdir(parents=True, exist_ok=True)
	handle, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
	try:
		with os.fdopen(handle, "wb") as temp_file:
			temp_file.write(data)
		os.replace(temp_name, path)
	finally:
		if os.path.exists(temp_name):
			os.unlink(temp_name)


#============================================
def rasterize_card(rendered: RenderedCard) -> PIL.Image.Image:
	"""
	Rasterize a rendered card at its layout resolution.

	Args:
		rendered: Rendered card.

	Returns:
		RGBA image.
	"""
	zoom = rendered.geometry.dpi / POINTS_PER_INCH
	document = fitz.open(stream=rendered.pdf_bytes, filetype="pdf")
	try:
		pixmap = document.load_page(0).get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=True)
		image = PIL.Image.frombytes("RGBA", (pixmap.width, pixmap.height), pixmap.samples)
	finally:
		document.close()
	return image


#============================================
def write_png(rendered: RenderedCard, path: pathlib.Path) -> None:
	image = rasterize_card(rendered)
	buffer = io.BytesIO()
	dpi = rendered.geometry.dpi
	image.save(buffer, format="PNG", dpi=(dpi, dpi))
	write_output_atomically(path, buffer.getvalue())


#============================================
def write_single_pdf(rendered: RenderedCard, path: pathlib.Path) -> None:
	write_output_atomically(path, rendered.pdf_bytes)


#============================================
def crop_line_segments(sheet: Sheet) -> list[tuple[float, float, float, float]]:
	"""
	Turn crop lines into PDF line segments.

	A line longer than half the page is drawn across the whole page;
	otherwise it is drawn as two marks of its length at the page edges.

	Args:
		sheet: Compiled sheet.

	Returns:
		Segments (x0, y0, x1, y1) in PDF coordinates (origin bottom-left).
	"""
	page_width = sheet.page_width
	page_height = sheet.page_height
	segments: list[tuple[float, float, float, float]] = []
	for line in sheet.crop_lines:
		if line.orientation == "horizontal":
			y = page_height - line.offset
			if line.length > page_width / 2.0:
				segments.append((0.0, y, page_width, y))
			else:
				segments.append((0.0, y, line.length, y))
				segments.append((page_width - line.length, y, page_width, y))
		else:
			x = line.offset
			if line.length > page_height / 2.0:
				segments.append((x, 0.0, x, page_height))
			else:
				segments.append((x, page_height, x, page_height - line.length))
				segments.append((x, line.length, x, 0.0))
	return segments


#============================================
def build_crop_line_overlay(sheet: Sheet) -> pypdf.PageObject | None:
	"""
	Build a PDF overlay page with the sheet's crop lines.

	Args:
		sheet: Compiled sheet.

	Returns:
		PDF page object, or None when the sheet has no crop lines.
	"""
	segments = crop_line_segments(sheet)
	if not segments:
		return None
	buffer = io.BytesIO()
	pdf = reportlab.pdfgen.canvas.Canvas(buffer, pagesize=(sheet.page_width, sheet.page_height))
	pdf.setLineWidth(CROP_LINE_WIDTH)
	pdf.setStrokeColorRGB(0.0, 0.0, 0.0)
	for x0, y0, x1, y1 in segments:
		pdf.line(x0, y0, x1, y1)
	pdf.save()
	buffer.seek(0)
	reader = pypdf.PdfReader(buffer)
	return reader.pages[0]


#============================================
def content_box(geometry: Geometry) -> tuple[float, float, float, float]:
	"""
	Get the area inside the cut insets of a rendered card page.

	Args:
		geometry: Layout geometry.

	Returns:
		Tuple of (x, y, width, height) in PDF points, origin bottom-left.
	"""
	dpi = geometry.dpi
	return (
		csr.config.pixels_to_points(geometry.cut.left, dpi),
		csr.config.pixels_to_points(geometry.cut.bottom, dpi),
		csr.config.pixels_to_points(geometry.content_width, dpi),
		csr.config.pixels_to_points(geometry.content_height, dpi),
	)


#============================================
def compute_slot_transform(slot: CardPlacement, geometry: Geometry, page_height: float) -> pypdf.Transformation:
	"""
	Map a rendered card page onto its slot on a sheet page.

	The card's content area lands with its top-left corner on the slot.
	Reflection and clockwise rotation happen about the content center.

	Args:
		slot: Slot on the sheet.
		geometry: Layout geometry of the card.
		page_height: Sheet page height in points.

	Returns:
		pypdf Transformation.
	"""
	x0, y0, width, height = content_box(geometry)
	transform = pypdf.Transformation().translate(-x0, -y0)
	if slot.reflect is not None or slot.rotate:
		transform = transform.translate(-width / 2.0, -height / 2.0)
		if slot.reflect == "horizontal":
			transform = transform.scale(-1.0, 1.0)
		elif slot.reflect == "vertical":
			transform = transform.scale(1.0, -1.0)
		if slot.rotate:
			transform = transform.rotate(-slot.rotate)
		transform = transform.translate(width / 2.0, height / 2.0)
	return transform.translate(slot.x, page_height - slot.y - height)


#============================================
def impose_sheet(
	rendered_cards: list[RenderedCard],
	sheet: Sheet,
	output_path: pathlib.Path,
	metadata: PdfMetadata,
) -> SheetResult:
	"""
	Impose rendered cards onto sheet pages.

	Args:
		rendered_cards: Cards in print order; repeats are allowed.
		sheet: Compiled sheet.
		output_path: Output PDF path.
		metadata: Project metadata.

	Returns:
		SheetResult.
	"""
	cards_per_page = sheet.num_cards
	if not rendered_cards:
		logger.warning("no cards to impose, %s not written", output_path)
		return SheetResult(0, cards_per_page, 0, None)
	if cards_per_page == 0:
		raise ConfigurationError("sheet has no card slots; the card does not fit on the page")

	writer = pypdf.PdfWriter()
	overlay = build_crop_line_overlay(sheet)
	tile_cache: dict[str, pypdf.PageObject] = {}
	for index, rendered in enumerate(rendered_cards):
		if index % cards_per_page == 0:
			page = pypdf.PageObject.create_blank_page(width=sheet.page_width, height=sheet.page_height)
			if overlay is not None:
				page.merge_page(overlay)
			writer.add_page(page)

		page = writer.pages[-1]
		slot = sheet.cards[index % cards_per_page]
		if rendered.card_id not in tile_cache:
			tile = pypdf.PdfReader(io.BytesIO(rendered.pdf_bytes)).pages[0]
			x0, y0, width, height = content_box(rendered.geometry)
			# merged pages are clipped to their crop box
			tile.cropbox = pypdf.generic.RectangleObject([x0, y0, x0 + width, y0 + height])
			tile_cache[rendered.card_id] = tile
		transform = compute_slot_transform(slot, rendered.geometry, sheet.page_height)
		page.merge_transformed_page(tile_cache[rendered.card_id], transform)

	info = {"/Creator": metadata.creator, "/Producer": metadata.creator}
	if metadata.title:
		info["/Title"] = metadata.title
	if metadata.author:
		info["/Author"] = metadata.author
	if metadata.subject:
		info["/Subject"] = metadata.subject
	if metadata.keywords:
		info["/Keywords"] = metadata.keywords
	writer.add_metadata(info)

	buffer = io.BytesIO()
	writer.write(buffer)
	write_output_atomically(output_path, buffer.getvalue())
	pages = (len(rendered_cards) + cards_per_page - 1) // cards_per_page
	return SheetResult(len(rendered_cards), cards_per_page, pages, str(output_path))


#============================================
def sanitize_token(value: str) -> str:
	"""
	Sanitize a card id for file names.

	Args:
		value: Input string.

	Returns:
		Sanitized string.
	"""
	result: list[str] = []
	for char in value:
		if char.isalnum() or char in "-.":
			result.append(char)
		else:
			result.append("_")
	sanitized = "".join(result).strip("_.")
	if not sanitized:
		return "card"
	return sanitized


#============================================
def unique_output_stems(card_ids: typing.Iterable[str]) -> dict[str, str]:
	"""
	Map card ids to file stems that never collide.

	Ids that sanitize to a stem already taken get a numeric suffix,
	in input order, so no card overwrites another card's files.

	Args:
		card_ids: Card ids in output order.

	Returns:
		Mapping from card id to file stem.
	"""
	stems: dict[str, str] = {}
	taken: set[str] = set()
	for card_id in card_ids:
		if card_id in stems:
			continue
		base = sanitize_token(card_id)
		stem = base
		counter = 2
		while stem.lower() in taken:
			stem = f"{base}_{counter}"
			counter += 1
		if stem != base:
			logger.warning("card %r shares file name %r, writing %r", card_id, base, stem)
		taken.add(stem.lower())
		stems[card_id] = stem
	return stems
