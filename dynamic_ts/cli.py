"""
Command line interface for running a forward simulation with either
ancestry backend and reporting the outcome.
"""
import argparse
import logging
import sys
import time

import daiquiri

from . import exceptions
from .simulator import SimulationConfig, Simulator


def make_parser():
    parser = argparse.ArgumentParser(
        prog="dynamic-ts",
        description="Forward simulation with dynamic or tree sequence ancestry",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("-N", type=int, default=1000, help="Haploid population size")
    parser.add_argument(
        "--recombination_rate",
        "-r",
        type=float,
        default=0.0,
        help="Recombination rate per unit genome length per meiosis",
    )
    parser.add_argument(
        "--genome_length", "-L", type=float, default=10000, help="Genome length"
    )
    parser.add_argument(
        "--seed", "-S", type=int, default=101, help="Random number seed"
    )
    parser.add_argument(
        "--nsteps",
        "-n",
        type=int,
        default=300,
        help="Simulation length (number of generations)",
    )
    parser.add_argument(
        "--death_probability", "-d", type=float, default=1.0, help="Death probability"
    )
    parser.add_argument(
        "--replacement_probability",
        type=float,
        default=1.0,
        help="Probability that a death is replaced by a birth",
    )
    parser.add_argument(
        "--asexual",
        action="store_true",
        default=False,
        help="Offspring inherit the whole genome from a single parent",
    )
    parser.add_argument(
        "--continuous",
        action="store_true",
        default=False,
        help="Draw breakpoints on a continuous genome",
    )
    parser.add_argument(
        "--output", "-o", default=None, help="Write the final ancestry to this file"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Log progress information",
    )
    parser.add_argument(
        "--log-level",
        "-l",
        type=int,
        default=logging.WARNING,
        help="Set log-level to the specified value",
    )

    subparsers = parser.add_subparsers(dest="backend")
    subparsers.required = True
    subparsers.add_parser(
        "dynamic", help="Track ancestry with the dynamic, inline-simplified graph"
    )
    tskit_parser = subparsers.add_parser(
        "tskit", help="Record tables and simplify periodically"
    )
    tskit_parser.add_argument(
        "--simplification_interval",
        "-s",
        type=int,
        default=1,
        help="Simplify every this many generations",
    )
    tskit_parser.add_argument(
        "--engine",
        choices=["python", "tskit"],
        default="python",
        help="Simplification implementation",
    )
    return parser


def validate_args(parser, args):
    config = SimulationConfig(
        population_size=args.N,
        sequence_length=args.genome_length,
        num_generations=args.nsteps,
        recombination_rate=args.recombination_rate,
        death_probability=args.death_probability,
        replacement_probability=args.replacement_probability,
        mating="asexual" if args.asexual else "sexual",
        discrete_genome=not args.continuous,
        backend=args.backend,
        simplification_interval=getattr(args, "simplification_interval", 1),
        simplify_engine=getattr(args, "engine", "python"),
        seed=args.seed,
    )
    try:
        config.validate()
    except exceptions.ConfigurationError as e:
        parser.error(str(e))
    return config


def setup_logging(args):
    log_level = logging.INFO if args.verbose else args.log_level
    daiquiri.setup(
        level=log_level,
        outputs=[
            daiquiri.output.Stream(
                sys.stderr,
                formatter=daiquiri.formatter.ColorFormatter(
                    fmt="[%(levelname)s] %(name)s: %(message)s"
                ),
            )
        ],
    )


def run(args, config):
    before = time.perf_counter()
    sim = Simulator(config)
    result = sim.run()
    elapsed = time.perf_counter() - before
    print(
        f"{result.status.name.lower()} generations={result.generations} "
        f"alive={result.num_alive} nodes={result.num_nodes} "
        f"edges={result.num_edges} time={elapsed:.3f}"
    )
    if args.output is not None:
        sim.backend.export().dump(args.output, time=result.time)
    return result


def main(arg_list=None):
    parser = make_parser()
    args = parser.parse_args(arg_list)
    config = validate_args(parser, args)
    setup_logging(args)
    run(args, config)


if __name__ == "__main__":
    main()
