"""
CLI entry points for rendering card projects.
"""

# Standard Library
import argparse
import logging
import pathlib
import sys
import time

# local repo modules
import card_sheet_renderer as csr
import card_sheet_renderer.config
import card_sheet_renderer.errors
import card_sheet_renderer.project
import card_sheet_renderer.records
import card_sheet_renderer.render


RunConfig = csr.config.RunConfig
CardSheetError = csr.errors.CardSheetError

DEFAULT_DECK_NAME = csr.config.DEFAULT_DECK_NAME
PROGRESS_BAR_WIDTH = csr.config.PROGRESS_BAR_WIDTH

logger = logging.getLogger(__name__)


#============================================
def print_progress(prefix: str, current: int, total: int) -> None:
	"""
	Print a simple progress bar.

	Args:
		prefix: Label text.
		current: Current count.
		total: Total count.
	"""
	if total <= 0:
		return
	percent = int(round((current / total) * 100.0))
	filled = int(round(PROGRESS_BAR_WIDTH * percent / 100.0))
	bar = "#" * filled + "-" * (PROGRESS_BAR_WIDTH - filled)
	end = "\n" if current >= total else "\r"
	print(f"{prefix} [{bar}] {current}/{total} ({percent}%)", end=end)


#============================================
def build_run_config(args: argparse.Namespace) -> RunConfig:
	"""
	Build the run configuration from CLI args.

	Args:
		args: Parsed argparse namespace.

	Returns:
		RunConfig instance.
	"""
	return RunConfig(
		project_dir=args.project_dir,
		output_dir=args.output_dir,
		write_png=args.write_png,
		write_pdf=args.write_pdf,
		sheet_type=args.sheet_type,
		deck_name=args.deck_name,
		selection_path=args.selection_path,
		card_ids=args.card_ids,
		keep_going=args.keep_going,
		jobs=max(1, args.jobs),
		verbose=args.verbose,
	)


#============================================
def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
	"""
	Parse command line arguments.

	Args:
		argv: Arguments to parse, defaults to sys.argv.

	Returns:
		Parsed argparse namespace.
	"""
	parser = argparse.ArgumentParser(description="Render card layouts to PNG images, PDFs and print sheets.")
	parser.add_argument("project_dir", help="Project directory (project.xml, layouts/, data/, images/).")

	output_group = parser.add_argument_group("Output")
	output_group.add_argument("-o", "--output", dest="output_dir", required=True, help="Output directory.")
	output_group.add_argument("-p", "--png", dest="write_png", action="store_true", help="Write one PNG per card.")
	output_group.add_argument("-P", "--no-png", dest="write_png", action="store_false", help="Skip PNG output.")
	output_group.add_argument("-f", "--pdf", dest="write_pdf", action="store_true", help="Write one PDF per card.")
	output_group.add_argument("-F", "--no-pdf", dest="write_pdf", action="store_false", help="Skip per-card PDFs.")
	output_group.add_argument("-s", "--sheet", dest="sheet_type", default=None, help="Sheet type for a printable deck PDF.")
	output_group.add_argument("-n", "--deck-name", dest="deck_name", default=DEFAULT_DECK_NAME, help="Deck PDF file stem.")

	selection_group = parser.add_argument_group("Selection")
	selection_group.add_argument("-l", "--selection", dest="selection_path", default=None, help="Selection list file.")
	selection_group.add_argument("-c", "--card", dest="card_ids", action="append", default=None, help="Card id to render (repeatable).")

	behavior_group = parser.add_argument_group("Behavior")
	behavior_group.add_argument("-k", "--keep-going", dest="keep_going", action="store_true", help="Skip failing cards and report them at the end.")
	behavior_group.add_argument("-j", "--jobs", dest="jobs", type=int, default=1, help="Number of render threads.")
	behavior_group.add_argument("-v", "--verbose", dest="verbose", action="store_true", help="Enable debug logging.")

	parser.set_defaults(
		write_png=True,
		write_pdf=False,
		keep_going=False,
		verbose=False,
	)

	args = parser.parse_args(argv)
	return args


#============================================
def select_card_ids(project: csr.project.Project, config: RunConfig) -> list[str]:
	"""
	Decide which cards to print and in which order.

	Args:
		project: Loaded project.
		config: Run configuration.

	Returns:
		Card ids in print order, repeats allowed.
	"""
	if config.selection_path is not None:
		text = pathlib.Path(config.selection_path).read_text(encoding="utf-8")
		selection = csr.records.parse_selection(text)
	elif config.card_ids:
		selection = list(config.card_ids)
	else:
		selection = list(project.cards)
	for card_id in selection:
		project.card(card_id)
	return selection


#============================================
def run_pipeline(config: RunConfig) -> int:
	"""
	Run the full pipeline from project to output files.

	Args:
		config: Run configuration.

	Returns:
		Process exit status.
	"""
	print("Card sheet renderer")
	print(f"Project: {config.project_dir}")
	print(f"Output directory: {config.output_dir}")
	print(f"PNG output: {config.write_png}")
	print(f"PDF output: {config.write_pdf}")
	if config.sheet_type:
		print(f"Sheet type: {config.sheet_type}")

	start_time = time.perf_counter()
	project = csr.project.load_project(pathlib.Path(config.project_dir))
	print(f"Layouts loaded: {len(project.layouts)}")
	print(f"Cards loaded: {len(project.cards)}")

	sheet = None
	if config.sheet_type:
		sheet = project.sheet_type(config.sheet_type).compile()
		print(f"Cards per sheet: {sheet.num_cards}")

	selection = select_card_ids(project, config)
	unique_ids = list(dict.fromkeys(selection))
	cards = [project.card(card_id) for card_id in unique_ids]
	print(f"Cards selected: {len(selection)} ({len(unique_ids)} unique)")

	render_start = time.perf_counter()
	images = csr.render.ImageStore(project)
	rendered, failures = csr.render.render_cards(
		project,
		cards,
		images,
		jobs=config.jobs,
		keep_going=config.keep_going,
		progress=lambda done, total: print_progress("Rendering", done, total),
	)
	render_end = time.perf_counter()

	output_dir = pathlib.Path(config.output_dir)
	stems = csr.render.unique_output_stems(item.card_id for item in rendered)
	for item in rendered:
		stem = stems[item.card_id]
		if config.write_png:
			csr.render.write_png(item, output_dir / "png" / f"{stem}.png")
		if config.write_pdf:
			csr.render.write_single_pdf(item, output_dir / "pdf" / f"{stem}.pdf")
	print(f"Cards rendered: {len(rendered)}")

	if sheet is not None:
		by_id = {item.card_id: item for item in rendered}
		ordered = [by_id[card_id] for card_id in selection if card_id in by_id]
		deck_path = output_dir / f"{csr.render.sanitize_token(config.deck_name)}.pdf"
		result = csr.render.impose_sheet(ordered, sheet, deck_path, project.metadata)
		print(f"Sheet pages written: {result.pages}")
		if result.output_path:
			print(f"Deck PDF: {result.output_path}")

	total_time = time.perf_counter() - start_time
	print(
		"Timing: render={:.2f}s total={:.2f}s".format(
			render_end - render_start,
			total_time,
		)
	)
	if failures:
		print(f"Cards failed: {len(failures)}")
		for failure in failures:
			print(f"  {failure.card_id}: {failure.error}")
		return 1
	return 0


#============================================
def main(argv: list[str] | None = None) -> int:
	"""
	Main entry point.
	"""
	args = parse_args(argv)
	config = build_run_config(args)
	logging.basicConfig(
		level=logging.DEBUG if config.verbose else logging.WARNING,
		format="%(levelname)s %(name)s: %(message)s",
	)
	try:
		return run_pipeline(config)
	except CardSheetError as error:
		logger.debug("run aborted", exc_info=True)
		print(f"Error: {error}", file=sys.stderr)
		return 2


if __name__ == "__main__":
	sys.exit(main())
