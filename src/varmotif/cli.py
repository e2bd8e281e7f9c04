import argparse
import json
import logging
import os
import sys
from typing import Any, Dict

from varmotif.comparison import registry as metric_registry
from varmotif.pipeline import run_pipeline


def setup_logging(verbose: bool):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    logging.getLogger("numba").setLevel(logging.WARNING)


def _add_technical_options(parser: argparse.ArgumentParser, with_jobs: bool = True) -> None:
    """Options shared by every subcommand."""
    group = parser.add_argument_group("Technical Options")
    group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging for detailed execution tracking.",
    )
    if with_jobs:
        group.add_argument(
            "--jobs",
            type=int,
            default=1,
            help="Number of parallel jobs to run. Set to -1 to use all available CPU cores. (default: %(default)s)",
        )


def create_arg_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        description="varmotif: variability, de novo k-mer motif assembly and PWM distance on deviation matrices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
 Examples:
   # Variability of every annotation with bootstrap intervals
   varmotif variability deviations.tsv --bootstrap 1000 --seed 42

   # De novo assembly from 6-mer deviations
   varmotif assemble kmer_deviations.tsv --kmer-length 6 \\
     --threshold 1.5 --p-cutoff 0.01 --cov-threshold 0.5 --output denovo.meme

   # Annotate de novo motifs with their closest known motifs
   varmotif compare denovo.meme jaspar.meme --metric ed --min-overlap 5
         """,
    )

    subparsers = parser.add_subparsers(dest="mode", help="Operation mode", required=True)

    # Variability subcommand
    var_parser = subparsers.add_parser("variability", help="Compute the variability of every annotation.")
    var_parser.add_argument("deviations", help="Path to a TSV/CSV table of deviation Z-scores (annotations x samples).")
    var_group = var_parser.add_argument_group("Variability Options")
    var_group.add_argument(
        "--bootstrap",
        type=int,
        default=1000,
        help="Number of bootstrap resamples for the variability interval; 0 disables it. (default: %(default)s)",
    )
    var_group.add_argument("--seed", type=int, help="Random seed for reproducible bootstrap intervals.")
    var_group.add_argument("--output", help="Optional path to also write the variability table (TSV/CSV).")
    _add_technical_options(var_parser)

    # Assembly subcommand
    asm_parser = subparsers.add_parser("assemble", help="Assemble de novo motifs from k-mer deviations.")
    asm_parser.add_argument("deviations", help="Path to a TSV/CSV table of k-mer deviation Z-scores.")
    asm_io_group = asm_parser.add_argument_group("Input/Output Options")
    asm_io_group.add_argument(
        "--covariance",
        help="Path to a k-mer x k-mer covariance table. If omitted, it is computed from the deviations.",
    )
    asm_io_group.add_argument("--kmer-length", type=int, help="Use only k-mers of this length.")
    asm_io_group.add_argument("--output", help="Write assembled motifs to this file (.meme or .pkl).")

    asm_group = asm_parser.add_argument_group("Assembler Options")
    asm_group.add_argument(
        "--threshold",
        type=float,
        default=1.5,
        help="Minimum variability for a k-mer to seed a motif. (default: %(default)s)",
    )
    asm_group.add_argument(
        "--p-cutoff",
        type=float,
        default=0.01,
        help="Maximum adjusted variability p-value for a seed. (default: %(default)s)",
    )
    asm_group.add_argument(
        "--cov-threshold",
        type=float,
        default=0.5,
        help="Minimum normalized covariance with the seed for a k-mer to be merged. (default: %(default)s)",
    )
    asm_group.add_argument(
        "--max-mismatches",
        type=int,
        default=1,
        help="Maximum mismatches between an aligned k-mer and the seed. (default: %(default)s)",
    )
    asm_group.add_argument(
        "--min-overlap",
        type=int,
        help="Minimum overlap when aligning k-mers onto the seed. (default: k - 1)",
    )
    asm_group.add_argument("--max-motifs", type=int, help="Stop after this many motifs.")
    _add_technical_options(asm_parser, with_jobs=False)

    # Comparison subcommand
    cmp_parser = subparsers.add_parser("compare", help="Compute PWM distances between two motif collections.")
    cmp_parser.add_argument("motifs1", help="Query motifs (.meme, .pfm or .pkl).")
    cmp_parser.add_argument(
        "motifs2", nargs="?", help="Target motifs (.meme, .pfm or .pkl). Defaults to the queries themselves."
    )
    cmp_group = cmp_parser.add_argument_group("Comparator Options")
    cmp_group.add_argument(
        "--metric",
        choices=metric_registry.available(),
        default="ed",
        help=(
            "Per-position divergence. Choices: ed (scaled Euclidean distance), "
            "jsd (Jensen-Shannon divergence), cosine (1 - cosine similarity). (default: %(default)s)"
        ),
    )
    cmp_group.add_argument(
        "--min-overlap",
        type=int,
        default=5,
        help="Minimum number of overlapping positions for a valid alignment. (default: %(default)s)",
    )
    cmp_group.add_argument(
        "--all-pairs",
        action="store_true",
        help="Report every pair instead of the closest target for each query.",
    )
    _add_technical_options(cmp_parser)

    return parser


def validate_inputs(args) -> None:
    """Validate input files and parameters."""
    logger = logging.getLogger(__name__)
    if args.mode in ["variability", "assemble"]:
        if not os.path.exists(args.deviations):
            logger.error(f"Deviation file not found: {args.deviations}")
            sys.exit(1)
    if args.mode == "assemble" and args.covariance and not os.path.exists(args.covariance):
        logger.error(f"Covariance file not found: {args.covariance}")
        sys.exit(1)
    if args.mode == "compare":
        for path in [args.motifs1, args.motifs2]:
            if path is not None and not os.path.exists(path):
                logger.error(f"Motif file not found: {path}")
                sys.exit(1)


def map_args_to_pipeline_kwargs(args) -> Dict[str, Any]:
    """Map CLI arguments to pipeline keyword arguments."""
    kwargs: Dict[str, Any] = {}

    if args.mode == "variability":
        kwargs.update(
            {
                "deviations_path": args.deviations,
                "bootstrap_samples": args.bootstrap,
                "seed": args.seed,
                "n_jobs": args.jobs,
                "output": args.output,
            }
        )
    elif args.mode == "assemble":
        kwargs.update(
            {
                "deviations_path": args.deviations,
                "covariance_path": args.covariance,
                "output": args.output,
                "kmer_length": args.kmer_length,
                "progress": args.verbose,
                "variability_threshold": args.threshold,
                "p_cutoff": args.p_cutoff,
                "covariance_threshold": args.cov_threshold,
                "max_mismatches": args.max_mismatches,
                "min_overlap": args.min_overlap,
                "max_motifs": args.max_motifs,
            }
        )
    elif args.mode == "compare":
        kwargs.update(
            {
                "motifs1_path": args.motifs1,
                "motifs2_path": args.motifs2,
                "all_pairs": args.all_pairs,
                "metric": args.metric,
                "min_overlap": args.min_overlap,
                "n_jobs": args.jobs,
            }
        )

    return kwargs


def main_cli():
    """Main CLI entry point."""
    parser = create_arg_parser()

    if len(sys.argv) == 1:
        parser.print_help(sys.stderr)
        sys.exit(1)

    args = parser.parse_args()

    setup_logging(args.verbose)

    validate_inputs(args)

    pipeline_kwargs = map_args_to_pipeline_kwargs(args)

    if args.verbose:
        logger = logging.getLogger(__name__)
        logger.info("=" * 60)
        logger.info(f"varmotif - {args.mode.capitalize()} Mode")
        logger.info("=" * 60)
        for key, value in pipeline_kwargs.items():
            logger.info(f"{key}: {value}")
        logger.info("=" * 60)

    try:
        result = run_pipeline(args.mode, **pipeline_kwargs)
        print(json.dumps(result))

    except Exception as e:
        print(f"ERROR: Pipeline execution failed: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main_cli()
