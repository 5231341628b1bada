from datetime import datetime, timedelta, timezone

import pytest
import schemas
from google.protobuf import any_pb2, wrappers_pb2

from protoguard import RecursionError
from protoguard.constraints import ConstraintResolver
from protoguard.evaluator import MessageEvaluator

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def evaluator():
    return MessageEvaluator(ConstraintResolver())


def times(**kwargs):
    msg = schemas.Times()
    msg.ttl.FromTimedelta(timedelta(minutes=5))
    for name, value in kwargs.items():
        getattr(msg, name).CopyFrom(value)
    return msg


def test_time_rules(evaluator):
    msg = times()
    msg.created.FromDatetime(datetime(2024, 1, 1))
    assert () == evaluator.evaluate(msg, now=NOW)

    msg.created.FromDatetime(datetime(2025, 1, 1))
    violations = evaluator.evaluate(msg, now=NOW)
    assert ["timestamp.lt_now"] == [v.rule_id for v in violations]
    assert "value must be less than now" == violations[0].message


def test_now_defaults_to_current_time(evaluator):
    msg = times()
    msg.created.FromDatetime(datetime.now(timezone.utc) + timedelta(days=1))
    assert ["created"] == [v.path for v in evaluator.evaluate(msg)]


def test_duration_bounds(evaluator):
    msg = times()
    msg.ttl.FromTimedelta(timedelta(hours=2))
    violations = evaluator.evaluate(msg, now=NOW)
    assert ["duration.gte_lte"] == [v.rule_id for v in violations]
    assert (
        "value must be greater than or equal to 1s and less than or equal to 3600s"
        == violations[0].message
    )

    msg.ttl.FromTimedelta(timedelta(0))
    violations = evaluator.evaluate(msg, now=NOW)
    assert ["duration.gte_lte"] == [v.rule_id for v in violations]


def test_wrapper_value(evaluator):
    msg = times(limit=wrappers_pb2.Int32Value(value=0))
    violations = evaluator.evaluate(msg, now=NOW)
    assert ["int32.gte"] == [v.rule_id for v in violations]
    assert ["limit"] == [v.path for v in violations]

    msg = times(limit=wrappers_pb2.Int32Value(value=5))
    assert () == evaluator.evaluate(msg, now=NOW)


def test_unset_wrapper_is_skipped(evaluator):
    assert () == evaluator.evaluate(times(), now=NOW)


def test_any_type_url(evaluator):
    payload = any_pb2.Any()
    payload.Pack(wrappers_pb2.StringValue(value="x"))
    violations = evaluator.evaluate(times(payload=payload), now=NOW)
    assert ["any.in"] == [v.rule_id for v in violations]

    payload.Pack(wrappers_pb2.Int32Value(value=1))
    assert () == evaluator.evaluate(times(payload=payload), now=NOW)


def test_compiled_set_is_reused(evaluator):
    compiled = evaluator.resolver.resolve(schemas.Code.DESCRIPTOR)
    violations = evaluator.evaluate(schemas.Code(code="xyz"), compiled)
    assert ["string.min_len"] == [v.rule_id for v in violations]


def test_depth_counts_nested_messages():
    evaluator = MessageEvaluator(ConstraintResolver(), max_depth=2)
    assert () == evaluator.evaluate(schemas.chain(2))
    with pytest.raises(RecursionError) as e:
        evaluator.evaluate(schemas.chain(3))
    assert "protoguard.tests.Node" in str(e.value)


def test_nested_violation_within_depth():
    evaluator = MessageEvaluator(ConstraintResolver(), max_depth=4)
    msg = schemas.chain(2)
    msg.child.child.value = -1
    violations = evaluator.evaluate(msg)
    assert ["child.child.value"] == [v.path for v in violations]


def test_fail_fast_stops_across_fields(evaluator):
    team = schemas.Team(
        members=[schemas.valid_person(age=-1), schemas.valid_person(age=-2)]
    )
    assert 2 == len(evaluator.evaluate(team))
    violations = evaluator.evaluate(team, fail_fast=True)
    assert ["members[0].age"] == [v.path for v in violations]


def test_exclusive_duration_range(evaluator):
    msg = schemas.Ranges(inside=1)
    msg.window.FromTimedelta(timedelta(seconds=30))
    violations = evaluator.evaluate(msg, now=NOW)
    assert ["duration.gt_lt_exclusive"] == [v.rule_id for v in violations]
    assert "value must be greater than 60s or less than 10s" == violations[0].message

    msg.window.FromTimedelta(timedelta(seconds=90))
    assert () == evaluator.evaluate(msg, now=NOW)
