import pytest

from clusterup.pipeline.phases import (
    EXIT_CODES, PHASE_ORDER, Decision, NodeResult, Outcome, Phase, PhaseResult,
    aggregate, parse_phase, transition,
)


def _r(node_id, outcome):
    return NodeResult(node_id=node_id, outcome=outcome)


def test_phase_order_is_fixed():
    assert [p.value for p in PHASE_ORDER] == [
        "Prepare",
        "ConfigureLoadBalancer",
        "BootstrapFirstControlPlane",
        "JoinFollowerControlPlanes",
        "JoinWorkers",
        "ConfigureGatewayAccess",
        "VerifyHealth",
    ]


def test_exit_codes_are_distinct_and_nonzero():
    codes = [EXIT_CODES[p] for p in PHASE_ORDER]
    assert len(set(codes)) == len(codes)
    assert 0 not in codes


def test_aggregate_requires_every_node_to_succeed():
    assert aggregate([_r("a", Outcome.SUCCESS), _r("b", Outcome.SUCCESS)]) is Outcome.SUCCESS
    assert aggregate([_r("a", Outcome.SUCCESS), _r("b", Outcome.FAILED)]) is Outcome.FAILED
    assert aggregate([_r("a", Outcome.FAILED), _r("b", Outcome.SKIPPED)]) is Outcome.FAILED
    assert aggregate([_r("a", Outcome.SUCCESS), _r("b", Outcome.SKIPPED)]) is Outcome.FAILED
    assert aggregate([_r("a", Outcome.SKIPPED)]) is Outcome.SKIPPED
    assert aggregate([]) is Outcome.SUCCESS


def test_first_failure_prefers_failed_over_cancelled():
    result = PhaseResult(Phase.JOIN_WORKERS, [
        _r("w0", Outcome.SKIPPED), _r("w1", Outcome.FAILED), _r("w2", Outcome.SUCCESS),
    ])
    assert result.first_failure.node_id == "w1"
    assert result.targets() == ["w0", "w1", "w2"]


def test_transition_advances_only_on_success():
    assert transition(Phase.PREPARE, Outcome.SUCCESS) == (Decision.ADVANCE, Phase.CONFIGURE_LOAD_BALANCER)
    assert transition(Phase.JOIN_WORKERS, Outcome.FAILED) == (Decision.HALT, None)
    assert transition(Phase.PREPARE, Outcome.SKIPPED) == (Decision.ADVANCE, Phase.CONFIGURE_LOAD_BALANCER)
    assert transition(Phase.VERIFY_HEALTH, Outcome.SUCCESS) == (Decision.DONE, None)


@pytest.mark.parametrize("raw", ["JoinWorkers", "join-workers", "JOIN_WORKERS", "joinworkers"])
def test_parse_phase_accepts_common_spellings(raw):
    assert parse_phase(raw) is Phase.JOIN_WORKERS


def test_parse_phase_rejects_unknown():
    with pytest.raises(ValueError, match="unknown phase"):
        parse_phase("upgrade")
