"""Provisioning step sequencer tests.

Validates:
  - ordered transition policy (first applicable rule wins)
  - determinism: the sequencer is a pure function of the context
  - inconsistent contexts are normalized, never raised on
  - step plan contents (billing and access steps appear only when relevant)
"""

from __future__ import annotations

from dataclasses import replace

import pytest

from provisioner.catalog.resource_types import COMPASS, GRAPH, SECRET
from provisioner.wizard.state_machine import (
    STEP_DESCRIPTORS,
    FlowStatus,
    Project,
    ProvisioningContext,
    StepKind,
    evaluate,
    plan_steps,
    requires_billing,
)

_PROJECTS = (Project('proj-alpha', 'Alpha'), Project('proj-beta', 'Beta'))


def _ctx(**overrides) -> ProvisioningContext:
    values = {
        'is_authenticated': True,
        'available_projects': _PROJECTS,
        'selected_project_id': 'proj-alpha',
        'resource_type_id': GRAPH,
        'selected_sku': 'standard',
        'has_valid_billing': True,
    }
    values.update(overrides)
    return ProvisioningContext(**values)


def _current(context, **kwargs) -> StepKind | None:
    current = evaluate(context, **kwargs).current
    return current.kind if current else None


class TestTransitionPolicy:
    def test_unauthenticated_is_blocked(self):
        evaluation = evaluate(_ctx(is_authenticated=False))
        assert evaluation.status is FlowStatus.REQUIRES_AUTHENTICATION
        assert evaluation.is_blocked
        assert evaluation.current is None
        assert evaluation.resource_type_id == GRAPH

    def test_no_projects_requires_project_selection(self):
        context = _ctx(available_projects=[], selected_project_id=None)
        assert _current(context) is StepKind.SELECT_OR_CREATE_PROJECT

    def test_projects_without_selection_requires_project_selection(self):
        context = _ctx(selected_project_id=None)
        assert _current(context) is StepKind.SELECT_OR_CREATE_PROJECT

    def test_paid_sku_without_billing(self):
        context = _ctx(selected_sku='standard', has_valid_billing=False)
        assert _current(context) is StepKind.SETUP_BILLING

    @pytest.mark.parametrize('billing', [True, False])
    def test_free_sku_goes_to_configure_regardless_of_billing(self, billing):
        context = _ctx(selected_sku='free', has_valid_billing=billing)
        assert _current(context) is StepKind.CONFIGURE

    def test_paid_sku_with_billing_goes_to_configure(self):
        assert _current(_ctx()) is StepKind.CONFIGURE

    def test_access_offered_after_configuration(self):
        current = evaluate(_ctx(), configuration_accepted=True).current
        assert current.kind is StepKind.GRANT_ACCESS
        assert current.is_skippable
        assert not current.is_required

    @pytest.mark.parametrize('wants_access', [True, False])
    def test_review_after_access_decision(self, wants_access):
        context = _ctx(wants_access_setup=wants_access)
        assert _current(context, configuration_accepted=True) is StepKind.REVIEW

    def test_complete_after_review(self):
        evaluation = evaluate(
            _ctx(wants_access_setup=False),
            configuration_accepted=True,
            review_confirmed=True,
        )
        assert evaluation.is_complete
        assert evaluation.current is None
        assert evaluation.current_index == len(evaluation.steps)

    def test_billing_regression_is_reevaluated(self):
        context = _ctx(wants_access_setup=False)
        assert _current(context, configuration_accepted=True) is StepKind.REVIEW
        lapsed = replace(context, has_valid_billing=False)
        assert _current(lapsed, configuration_accepted=True) is StepKind.SETUP_BILLING

    def test_billing_exempt_type_skips_billing(self):
        context = _ctx(resource_type_id=SECRET, has_valid_billing=False)
        assert _current(context) is StepKind.CONFIGURE


class TestDeterminism:
    @pytest.mark.parametrize(
        'context',
        [
            _ctx(is_authenticated=False),
            _ctx(selected_project_id=None),
            _ctx(has_valid_billing=False),
            _ctx(),
            _ctx(wants_access_setup=True),
        ],
    )
    def test_repeated_evaluation_is_identical(self, context):
        first = evaluate(context)
        for _ in range(5):
            assert evaluate(context) == first


class TestNormalization:
    def test_unknown_selected_project_is_treated_as_unselected(self):
        context = _ctx(selected_project_id='proj-gone')
        assert _current(context) is StepKind.SELECT_OR_CREATE_PROJECT

    def test_normalized_clears_unknown_selection(self):
        context = _ctx(selected_project_id='proj-gone')
        assert context.normalized().selected_project_id is None
        assert _ctx().normalized() == _ctx()

    def test_malformed_projects_are_coerced(self):
        context = ProvisioningContext(
            is_authenticated=True,
            available_projects=[{'id': 'p1', 'name': 'One'}, {'name': 'no id'}, 42],
            selected_project_id='p1',
        )
        assert context.available_projects == (Project('p1', 'One'),)
        assert context.selected_project == Project('p1', 'One')

    def test_non_sequence_projects_become_empty(self):
        context = ProvisioningContext(available_projects=None)  # type: ignore[arg-type]
        assert context.available_projects == ()

    def test_unknown_resource_type_uses_sku_rule(self):
        context = _ctx(resource_type_id='Konnektr.Nope', has_valid_billing=False)
        assert requires_billing(context)
        assert _current(context) is StepKind.SETUP_BILLING

    def test_context_round_trip(self):
        context = _ctx(wants_access_setup=False)
        assert ProvisioningContext.from_mapping(context.to_dict()) == context


class TestPlanSteps:
    def test_full_plan_for_paid_tier(self):
        kinds = [step.kind for step in plan_steps(_ctx())]
        assert kinds == [
            StepKind.SELECT_OR_CREATE_PROJECT,
            StepKind.SETUP_BILLING,
            StepKind.CONFIGURE,
            StepKind.GRANT_ACCESS,
            StepKind.REVIEW,
        ]

    def test_free_tier_omits_billing(self):
        kinds = [step.kind for step in plan_steps(_ctx(selected_sku='free'))]
        assert StepKind.SETUP_BILLING not in kinds

    def test_declined_access_is_never_offered(self):
        kinds = [step.kind for step in plan_steps(_ctx(wants_access_setup=False))]
        assert StepKind.GRANT_ACCESS not in kinds

    def test_free_first_type(self):
        context = _ctx(resource_type_id=COMPASS, selected_sku='free')
        assert not requires_billing(context)

    def test_current_index_tracks_plan(self):
        evaluation = evaluate(_ctx(), configuration_accepted=True)
        assert evaluation.steps[evaluation.current_index].kind is StepKind.GRANT_ACCESS

    def test_blocked_index_is_zero(self):
        assert evaluate(_ctx(is_authenticated=False)).current_index == 0

    def test_labels(self):
        assert STEP_DESCRIPTORS[StepKind.REVIEW].label == 'Review & Create'

    def test_to_dict(self):
        data = evaluate(_ctx(), configuration_accepted=True).to_dict()
        assert data['status'] == 'active'
        assert data['current']['kind'] == 'grant_access'
        assert data['current_index'] == 3
        assert data['completed'] == [
            'configure',
            'select_or_create_project',
            'setup_billing',
        ]
