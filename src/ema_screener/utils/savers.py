import logging
from pathlib import Path

OUTPUT_DIR = Path("csv")


def save_report(csv_text: str, filename: str, output_dir: str | Path | None = None) -> Path:
  """Writes the serialized report to ``<output_dir>/<filename>`` and returns the path."""
  output_dir = Path(output_dir) if output_dir else OUTPUT_DIR
  output_path = output_dir / filename
  try:
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path.write_text(csv_text, encoding="utf-8")
  except OSError as e:
    logging.error(f"A file system error occurred while writing to {output_path}: {e}")
    raise
  logging.info(f"Report successfully written to {output_path}")
  return output_path
