# classify.py

import argparse
import sys
from pathlib import Path

from imagelabel.config import AppConfig, get_settings, load_app_config
from imagelabel.data.loaders import load_image_bytes, load_labels, load_model_bytes
from imagelabel.errors import ImageLabelError
from imagelabel.output.reporting import (
    build_report,
    format_best_match,
    format_ranking,
    save_report_to_json,
)
from imagelabel.pipeline.classification_pipeline import build_classifier, classify_image_bytes
from imagelabel.utils.logger import setup_logger

logger = setup_logger(__name__)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {number}")
    return number


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command-line arguments for the classification entrypoint."""
    parser = argparse.ArgumentParser(
        description="Label a JPEG image with a pre-trained ONNX classifier",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(get_settings().configs_dir / "default.yaml"),
        help="Path to the YAML configuration file. Defaults are used if it does not exist.",
    )
    parser.add_argument(
        "--image",
        type=str,
        required=True,
        help="Path to the JPEG image to classify.",
    )
    parser.add_argument(
        "--model",
        type=str,
        default=None,
        help="Override the ONNX model path from the config.",
    )
    parser.add_argument(
        "--labels",
        type=str,
        default=None,
        help="Override the label file path from the config.",
    )
    parser.add_argument(
        "--top-k",
        type=_positive_int,
        default=None,
        help="Only list the K most likely classes (default: all).",
    )
    parser.add_argument(
        "--show-labels",
        action="store_true",
        help="Append the label name to every ranking line.",
    )
    parser.add_argument(
        "--json-out",
        type=str,
        default=None,
        help="Also write a JSON report to this path.",
    )
    return parser.parse_args(argv)


def _resolve_config(args: argparse.Namespace) -> AppConfig:
    config_path = Path(args.config)
    if config_path.exists():
        logger.info(
            "Loading application configuration from %s",
            config_path,
            extra={"phase": "config"},
        )
        app_cfg = load_app_config(config_path)
    else:
        logger.info("Config file not found, using defaults", extra={"phase": "config"})
        app_cfg = AppConfig()

    # Relative paths in the config live under models_dir; CLI overrides stay relative to the cwd.
    app_cfg = app_cfg.model_copy(
        update={"model": app_cfg.model.resolve_paths(get_settings().models_dir)}
    )

    overrides = {}
    if args.model is not None:
        overrides["model_path"] = Path(args.model)
    if args.labels is not None:
        overrides["labels_path"] = Path(args.labels)
    if overrides:
        app_cfg = app_cfg.model_copy(update={"model": app_cfg.model.model_copy(update=overrides)})
    return app_cfg


def main(argv=None) -> int:
    """CLI entrypoint: classify one image and print the best match and ranking."""
    args = parse_args(argv)

    app_cfg = _resolve_config(args)

    model_res = load_model_bytes(app_cfg.model.model_path)
    labels_res = load_labels(app_cfg.model.labels_path)
    image_res = load_image_bytes(args.image)

    # Any unreadable input is a fatal startup error.
    for res in (model_res, labels_res, image_res):
        if not res.ok:
            print(str(res.error), file=sys.stderr)
            return 1

    try:
        classifier = build_classifier(model_res.unwrap(), app_cfg.model)
        result = classify_image_bytes(
            image_res.unwrap(),
            classifier,
            labels_res.unwrap(),
            app_cfg.preprocess,
            providers=app_cfg.model.providers,
            image_path=args.image,
        )
    except ImageLabelError as exc:
        logger.error("Classification failed: %s", exc, extra={"image_path": args.image})
        print(str(exc), file=sys.stderr)
        return 1

    print(format_best_match(result.prediction))
    for line in format_ranking(
        result.ranking,
        labels=result.labels if args.show_labels else None,
        top_k=args.top_k,
    ):
        print(line)

    if args.json_out:
        report = build_report(
            result.prediction,
            result.ranking,
            result.labels,
            image_path=args.image,
            top_k=args.top_k,
        )
        save_report_to_json(report, args.json_out)
        logger.info("Report written", extra={"phase": "report", "image_path": args.image})

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
