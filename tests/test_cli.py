"""
Tests for the command line interface.

Run: pytest tests/test_cli.py -v
"""

import pytest

from scgep.cli import build_parser, main


class TestParser:

    def test_solve_defaults(self):
        args = build_parser().parse_args(['solve'])
        assert args.scenario == 'baseline'
        assert args.periods is None
        assert args.output_dir is None

    def test_compare_requires_scenarios(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['compare'])

    def test_unknown_scenario_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['solve', '--scenario', 'zombie_apocalypse'])


class TestCommands:

    def test_solve_prints_costs(self, capsys):
        code = main(['--periods', '3', 'solve'])
        out = capsys.readouterr().out
        assert code in (0, 2)
        assert 'Objective' in out
        assert 'Investment' in out

    def test_solve_writes_outputs(self, tmp_path, capsys):
        main(['--periods', '3', 'solve', '--output-dir', str(tmp_path)])
        for suffix in ('deployments', 'capacity', 'costs', 'material_flows'):
            assert (tmp_path / f"baseline_{suffix}.csv").exists(), f"Missing {suffix} output"

    def test_bottlenecks_with_mitigations(self, capsys):
        code = main(['--periods', '4', 'bottlenecks', '--scenario', 'constrained_supply',
                     '--mitigations', '2'])
        out = capsys.readouterr().out
        assert code == 0
        assert 'Materials:' in out
        assert 'Recommendations:' in out

    def test_invalid_periods_reported(self, capsys):
        code = main(['--periods', '0', 'solve'])
        assert code == 1
        assert 'n_periods' in capsys.readouterr().err
