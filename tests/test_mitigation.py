"""
Tests for mitigation ranking and portfolio selection.

Run: pytest tests/test_mitigation.py -v
"""

import pytest

from conftest import make_action
from scgep.mitigation import (
    MitigationPortfolio,
    implementation_sequence,
    rank_mitigations,
    select_portfolio,
)


class TestRanking:

    def test_roi_descending_and_stable(self):
        first = make_action('first', npv=50.0, cost=100.0)
        second = make_action('second', npv=50.0, cost=100.0)
        best = make_action('best', npv=90.0, cost=100.0)
        ranked = rank_mitigations([first, second, best])
        assert [a.id for a in ranked] == ['best', 'first', 'second']

    def test_feasibility_breaks_ties(self):
        shaky = make_action('shaky', npv=50.0, cost=100.0, feasibility=0.6)
        solid = make_action('solid', npv=50.0, cost=100.0, feasibility=0.9)
        assert [a.id for a in rank_mitigations([shaky, solid])] == ['solid', 'shaky']

    def test_zero_cost_excluded(self):
        free = make_action('free', npv=50.0, cost=0.0)
        paid = make_action('paid', npv=10.0, cost=100.0)
        assert free.roi is None
        assert [a.id for a in rank_mitigations([free, paid])] == ['paid']

    def test_top_n(self):
        actions = [make_action(f"a{i}", npv=float(i), cost=10.0) for i in range(1, 6)]
        assert [a.id for a in rank_mitigations(actions, top_n=2)] == ['a5', 'a4']

    def test_min_feasibility(self):
        low = make_action('low', npv=90.0, cost=10.0, feasibility=0.3)
        high = make_action('high', npv=10.0, cost=10.0, feasibility=0.9)
        assert [a.id for a in rank_mitigations([low, high], min_feasibility=0.5)] == ['high']

    def test_input_not_modified(self):
        actions = [make_action('x', npv=1.0, cost=10.0), make_action('y', npv=9.0, cost=10.0)]
        before = list(actions)
        rank_mitigations(actions)
        assert actions == before

    def test_negative_roi_still_ranked(self):
        loss = make_action('loss', npv=-10.0, cost=10.0)
        gain = make_action('gain', npv=10.0, cost=10.0)
        assert [a.id for a in rank_mitigations([loss, gain])] == ['gain', 'loss']


class TestImplementationSequence:

    def test_dependencies_first(self):
        a = make_action('a', npv=1.0, cost=1.0, dependencies=('b',))
        b = make_action('b', npv=1.0, cost=1.0, dependencies=('c',))
        c = make_action('c', npv=1.0, cost=1.0)
        assert implementation_sequence([a, b, c]) == ['c', 'b', 'a']

    def test_outside_dependencies_ignored(self):
        a = make_action('a', npv=1.0, cost=1.0, dependencies=('elsewhere',))
        assert implementation_sequence([a]) == ['a']

    def test_cycle_broken_at_first_action(self):
        p = make_action('p', npv=1.0, cost=1.0, dependencies=('q',))
        q = make_action('q', npv=1.0, cost=1.0, dependencies=('p',))
        assert implementation_sequence([p, q]) == ['p', 'q']


class TestPortfolio:

    def test_knapsack_beats_greedy(self):
        big = make_action('big', npv=80.0, cost=60.0)
        mid = make_action('mid', npv=70.0, cost=50.0)
        small = make_action('small', npv=60.0, cost=50.0)
        portfolio = select_portfolio([big, mid, small], budget=100.0)
        assert {a.id for a in portfolio.actions} == {'mid', 'small'}
        assert portfolio.total_cost == pytest.approx(100.0)
        assert portfolio.expected_benefit == pytest.approx(130.0)
        assert portfolio.roi == pytest.approx(1.3)

    def test_dependency_selected_together(self):
        lead = make_action('lead', npv=100.0, cost=50.0, dependencies=('prereq',))
        prereq = make_action('prereq', npv=1.0, cost=50.0)
        other = make_action('other', npv=60.0, cost=50.0)
        portfolio = select_portfolio([lead, prereq, other], budget=100.0)
        assert {a.id for a in portfolio.actions} == {'lead', 'prereq'}
        assert portfolio.implementation_sequence == ['prereq', 'lead']

    def test_unavailable_prerequisite_rules_out_action(self):
        lead = make_action('lead', npv=100.0, cost=10.0, dependencies=('infeasible',))
        infeasible = make_action('infeasible', npv=5.0, cost=10.0, feasibility=0.2)
        other = make_action('other', npv=20.0, cost=10.0)
        portfolio = select_portfolio([lead, infeasible, other], budget=1_000.0)
        assert [a.id for a in portfolio.actions] == ['other']

    def test_no_budget_takes_every_candidate(self):
        actions = [
            make_action('a', npv=10.0, cost=5.0),
            make_action('b', npv=30.0, cost=500.0),
            make_action('loss', npv=-1.0, cost=5.0),
            make_action('unlikely', npv=50.0, cost=5.0, feasibility=0.1),
        ]
        portfolio = select_portfolio(actions)
        assert [a.id for a in portfolio.actions] == ['b', 'a']
        assert portfolio.budget is None

    def test_no_budget_respects_prerequisites(self):
        lead = make_action('lead', npv=100.0, cost=10.0, dependencies=('infeasible',))
        infeasible = make_action('infeasible', npv=5.0, cost=10.0, feasibility=0.2)
        portfolio = select_portfolio([lead, infeasible])
        assert portfolio.actions == []

    def test_nothing_affordable(self):
        portfolio = select_portfolio([make_action('a', npv=10.0, cost=50.0)], budget=10.0)
        assert portfolio.actions == []
        assert portfolio.total_cost == 0.0

    def test_empty(self):
        portfolio = select_portfolio([], budget=100.0)
        assert portfolio.actions == []
        assert portfolio.roi == 0.0

    def test_empty_portfolio_defaults(self):
        assert MitigationPortfolio().implementation_sequence == []
