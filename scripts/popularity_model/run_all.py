"""End-to-end: load CSV -> build windows -> validate -> train -> evaluate -> save.

Usage:
    python -m scripts.popularity_model.run_all [--csv PATH] [--top-n N]
        [--feature-set simple|advanced] [--preset standard|advanced]
        [--model-out PATH] [--results-dir DIR]
"""

import argparse
import json
import sys
from pathlib import Path

from . import config
from .data_loader import read_csv_text
from .errors import PopularityError
from .evaluate import evaluate_forecaster
from .features import FEATURE_SETS
from .pipeline import load_pipeline, build_dataset, dataset_scope, summarize
from .train_gru import train_gru, save_model
from .windows import validate_tensors


def _print_progress(progress):
    if progress.early_stopping > 0:
        print(f"  epoch {progress.epoch}: val_loss={progress.val_loss:.4f} "
              f"(no improvement x{progress.early_stopping})", flush=True)


def run(csv_path, top_n=config.TOP_N_TRACKS, feature_set_name=config.DEFAULT_FEATURE_SET,
        preset="standard", model_out=None, results_dir=None, on_epoch=None):
    """Run the whole cycle once; any PopularityError aborts it."""
    settings = config.training_preset(preset)
    csv_text = read_csv_text(csv_path)

    ctx = load_pipeline(csv_text, top_n=top_n, feature_set_name=feature_set_name)
    build_dataset(ctx)
    validate_tensors(ctx.split)
    summary = summarize(ctx)

    with dataset_scope(ctx) as split:
        model, history = train_gru(
            split.X_train, split.y_train, split.X_test, split.y_test,
            epochs=settings["epochs"], batch_size=settings["batch_size"],
            on_epoch=on_epoch,
        )
        report = evaluate_forecaster(model, ctx)

    model_path = save_model(model, model_out)

    out_dir = Path(results_dir or config.RESULTS_DIR)
    out_dir.mkdir(parents=True, exist_ok=True)
    results = {
        "dataset": summary,
        "selected_tracks": ctx.selected_ids,
        "epochs_trained": len(history["loss"]),
        "history": history,
        "evaluation": report.as_dict(),
        "model_path": str(model_path),
    }
    with open(out_dir / "results.json", "w") as fp:
        json.dump(results, fp, indent=2, default=float)
    _write_analysis(results, out_dir / "analysis.md")
    return results


def _write_analysis(results, out_path):
    """Write analysis.md summarizing results."""
    ev = results["evaluation"]
    ds = results["dataset"]

    lines = ["# Streams Popularity Forecast - Analysis\n"]
    lines.append("## Dataset\n")
    lines.append(f"- Train / test samples: {ds['train_samples']} / {ds['test_samples']}")
    lines.append(f"- Input shape: {ds['input_shape'][0]} x {ds['input_shape'][1]}")
    lines.append(f"- Tracks: {ds['tracks']}, features per track: {ds['features_per_track']}\n")

    lines.append("## Accuracy\n")
    lines.append(f"- Consistent accuracy: {ev['consistent_accuracy']:.2f}%")
    lines.append(f"- Loss: {ev['loss']:.4f}")
    lines.append(f"- Macro F1: {ev['classification']['f1_macro']:.4f}")
    lines.append(f"- {ev['assessment']['message']}\n")

    lines.append("| Forecast day | Accuracy |")
    lines.append("|--------------|----------|")
    for i, acc in enumerate(ev["day_accuracies"]):
        lines.append(f"| Day +{i + 1} | {acc:.1f}% |")
    lines.append("")

    lines.append("## Track Accuracy\n")
    lines.append("| Track | Accuracy | Potential |")
    lines.append("|-------|----------|-----------|")
    for t in ev["track_accuracies"]:
        lines.append(f"| {t['track_name']} | {t['accuracy']:.1f}% | {t['hit_potential']} |")
    lines.append("")

    lines.append("## Hit Potential\n")
    for rank, t in enumerate(ev["track_accuracies"][:config.TOP_HIT_TRACKS], start=1):
        lines.append(f"{rank}. {t['track_name']}: {t['hit_potential']} ({t['accuracy']:.1f}%)")
    lines.append("")

    lines.append("## Feature Importance\n")
    if not ev["feature_importance"]:
        lines.append("Unable to compute feature importance.\n")
    else:
        for f in ev["feature_importance"]:
            lines.append(f"- {f['name']}: {f['score']:.1f}% - {f['description']}")
        lines.append("")

    lines.append("## Breakout Detection\n")
    if not ev["actionable_breakouts"]:
        lines.append("No strong breakout patterns detected in current evaluation.")
    for rank, b in enumerate(ev["actionable_breakouts"], start=1):
        lines.append(f"{rank}. {b['name']}: score {b['score'] * 100:.1f}, "
                     f"confidence {b['confidence'] * 100:.1f}%, "
                     f"{b['trend'].upper()} trend, {b['risk_level'].upper()} risk")
    lines.append("")

    with open(out_path, "w") as fp:
        fp.write("\n".join(lines))
    print(f"Analysis written to {out_path}", flush=True)


def main(argv=None):
    parser = argparse.ArgumentParser(description="GRU streams popularity forecaster")
    parser.add_argument("--csv", type=str, default=None,
                        help="Path to the streaming history CSV")
    parser.add_argument("--top-n", type=int, default=config.TOP_N_TRACKS,
                        help="Number of top tracks to model")
    parser.add_argument("--feature-set", choices=sorted(FEATURE_SETS),
                        default=config.DEFAULT_FEATURE_SET)
    parser.add_argument("--preset", choices=sorted(config.TRAINING_PRESETS),
                        default="standard", help="Training length preset")
    parser.add_argument("--model-out", type=str, default=None,
                        help="Where to save the trained model")
    parser.add_argument("--results-dir", type=str, default=None,
                        help="Directory for results.json and analysis.md")
    args = parser.parse_args(argv)

    csv_path = args.csv or str(config.DATA_CSV)
    try:
        run(csv_path, top_n=args.top_n, feature_set_name=args.feature_set,
            preset=args.preset, model_out=args.model_out,
            results_dir=args.results_dir, on_epoch=_print_progress)
    except PopularityError as exc:
        print(f"Error: {exc}", file=sys.stderr, flush=True)
        sys.exit(1)
    return 0


if __name__ == "__main__":
    sys.exit(main())
