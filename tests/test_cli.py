"""
Tests for the command line interface.
"""
import logging

import pytest

from dynamic_ts import cli
from dynamic_ts.tables import TableCollection

from . import tsutil


class TestParser:
    def test_benchmark_arguments(self):
        parser = cli.make_parser()
        args = parser.parse_args(
            "-N 100 -r 0.001 -L 1000 --seed 5 --nsteps 20 -d 0.5 tskit -s 10".split()
        )
        config = cli.validate_args(parser, args)
        assert config.population_size == 100
        assert config.recombination_rate == 0.001
        assert config.sequence_length == 1000
        assert config.seed == 5
        assert config.num_generations == 20
        assert config.death_probability == 0.5
        assert config.backend == "tskit"
        assert config.simplification_interval == 10
        assert config.simplify_engine == "python"

    def test_dynamic_defaults(self):
        parser = cli.make_parser()
        args = parser.parse_args(["dynamic"])
        config = cli.validate_args(parser, args)
        assert config.backend == "dynamic"
        assert config.simplification_interval == 1
        assert config.mating == "sexual"
        assert config.discrete_genome
        assert args.log_level == logging.WARNING

    def test_flags(self):
        parser = cli.make_parser()
        args = parser.parse_args(
            ["--asexual", "--continuous", "tskit", "--engine", "tskit"]
        )
        config = cli.validate_args(parser, args)
        assert config.mating == "asexual"
        assert not config.discrete_genome
        assert config.simplify_engine == "tskit"

    def test_backend_required(self):
        with pytest.raises(SystemExit):
            cli.make_parser().parse_args(["-N", "10"])

    @pytest.mark.parametrize(
        "arg_list",
        [
            ["-N", "0", "dynamic"],
            ["-d", "1.5", "dynamic"],
            ["-L", "0", "dynamic"],
            ["tskit", "-s", "0"],
        ],
    )
    def test_bad_config(self, arg_list):
        parser = cli.make_parser()
        args = parser.parse_args(arg_list)
        with pytest.raises(SystemExit):
            cli.validate_args(parser, args)


class TestMain:
    @pytest.mark.parametrize("backend", ["dynamic", "tskit"])
    def test_run(self, backend, capsys):
        cli.main(["-N", "10", "-L", "100", "-r", "0.01", "-n", "5", backend])
        out = capsys.readouterr().out
        assert out.startswith("completed generations=5 alive=10 ")

    def test_extinct(self, capsys):
        cli.main(["-N", "5", "-n", "5", "--replacement_probability", "0", "dynamic"])
        out = capsys.readouterr().out
        assert out.startswith("extinct generations=1 alive=0 nodes=0 edges=0")

    def test_output(self, tmp_path, capsys):
        path = tmp_path / "out.trees"
        cli.main(
            ["-N", "10", "-L", "50", "-r", "0.02", "-n", "8", "-o", str(path), "dynamic"]
        )
        capsys.readouterr()
        tables = TableCollection.load(path)
        tables.check_integrity()
        assert len(tables.samples()) == 10
        assert tsutil.non_branching_nodes(tables) == []

    def test_same_output_both_backends(self, tmp_path, capsys):
        labelled = []
        for backend in ["dynamic", "tskit"]:
            path = tmp_path / f"{backend}.trees"
            cli.main(["-N", "8", "-L", "50", "-r", "0.05", "-n", "10", "-o", str(path), backend])
            tables = TableCollection.load(path)
            labelled.append(
                (tsutil.labelled_nodes(tables), tsutil.labelled_edges(tables))
            )
        capsys.readouterr()
        assert labelled[0] == labelled[1]

    def test_bad_arguments(self):
        with pytest.raises(SystemExit):
            cli.main(["-N", "-3", "dynamic"])
