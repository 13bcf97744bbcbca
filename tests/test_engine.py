"""
Tests for the engine runner — probe/repair/apply/verify and halting.
"""

from hostconverge.core.errors import ErrorKind, HealthCheckFailed, PackageUnavailable, StateBroken
from hostconverge.core.engine.runner import generate_run_id, run_plan
from hostconverge.core.models.action import Receipt
from hostconverge.core.models.state import Decision, RepairPolicy, SatisfiedState
from hostconverge.core.models.step import Plan, Step


class FakeArtifact:
    """A converging thing with a probe-visible state."""

    def __init__(self, state: SatisfiedState = SatisfiedState.MISSING):
        self.state = state
        self.applies = 0
        self.repairs = 0

    def probe(self) -> SatisfiedState:
        return self.state

    def apply(self) -> Receipt:
        self.applies += 1
        self.state = SatisfiedState.SATISFIED
        return Receipt.success("artifact", "created")

    def repair(self) -> None:
        self.repairs += 1
        self.state = SatisfiedState.MISSING


def _step(name, artifact: FakeArtifact, **kwargs) -> Step:
    return Step(name=name, probe=artifact.probe, apply=artifact.apply, **kwargs)


def _failing_step(name, exc, **kwargs) -> Step:
    def apply():
        raise exc

    return Step(name=name, probe=lambda: SatisfiedState.MISSING, apply=apply, **kwargs)


# ── Convergence ──────────────────────────────────────────────────────


class TestConvergence:
    def test_missing_is_applied_then_verified(self):
        a = FakeArtifact()
        report = run_plan(Plan(name="p", steps=[_step("a", a)]))
        assert report.ok
        assert report.applied == ["a"]
        assert a.applies == 1
        entry = report.log.entries[0]
        assert entry.probed == SatisfiedState.MISSING

    def test_satisfied_is_skipped(self):
        a = FakeArtifact(SatisfiedState.SATISFIED)
        report = run_plan(Plan(name="p", steps=[_step("a", a)]))
        assert report.skipped == ["a"]
        assert a.applies == 0

    def test_second_run_applies_nothing(self):
        artifacts = [FakeArtifact() for _ in range(3)]
        steps = [_step(f"s{i}", a) for i, a in enumerate(artifacts)]
        plan = Plan(name="p", steps=steps)

        first = run_plan(plan)
        assert first.applied == ["s0", "s1", "s2"]

        second = run_plan(plan)
        assert second.applied == []
        assert second.skipped == ["s0", "s1", "s2"]
        assert all(a.applies == 1 for a in artifacts)

    def test_always_reapply_runs_every_time(self):
        a = FakeArtifact(SatisfiedState.SATISFIED)
        plan = Plan(name="p", steps=[_step("a", a, on_mismatch=RepairPolicy.ALWAYS_REAPPLY)])
        run_plan(plan)
        run_plan(plan)
        assert a.applies == 2

    def test_broken_without_recreate_policy_is_applied(self):
        a = FakeArtifact(SatisfiedState.BROKEN)
        report = run_plan(Plan(name="p", steps=[_step("a", a)]))
        assert report.applied == ["a"]
        assert a.repairs == 0

    def test_notes_only_after_success(self):
        plan = Plan(name="p", steps=[_step("a", FakeArtifact())], notes=["hello"])
        assert run_plan(plan).notes == ["hello"]
        assert run_plan(plan, dry_run=True).notes == []


# ── Broken state repair ──────────────────────────────────────────────


class TestRepair:
    def test_broken_is_removed_and_recreated(self):
        a = FakeArtifact(SatisfiedState.BROKEN)
        step = _step("venv", a, on_mismatch=RepairPolicy.RECREATE_IF_BROKEN, repair=a.repair)
        report = run_plan(Plan(name="p", steps=[step]))
        assert report.ok
        assert a.repairs == 1
        assert a.applies == 1
        assert report.log.entries[0].probed == SatisfiedState.MISSING

    def test_still_broken_after_repair_fails(self):
        a = FakeArtifact(SatisfiedState.BROKEN)
        after = FakeArtifact()

        def stubborn_repair():
            a.repairs += 1  # state stays broken

        step = _step("venv", a, on_mismatch=RepairPolicy.RECREATE_IF_BROKEN, repair=stubborn_repair)
        report = run_plan(Plan(name="p", steps=[step, _step("later", after)]))
        assert not report.ok
        assert report.failure.error_kind == ErrorKind.STATE_BROKEN
        assert a.repairs == 1
        assert report.failure.detail == "still broken after repair"
        assert a.applies == 0
        assert after.applies == 0

    def test_repair_raising_is_state_broken(self):
        a = FakeArtifact(SatisfiedState.BROKEN)

        def bad_repair():
            raise OSError("permission denied")

        step = _step("venv", a, on_mismatch=RepairPolicy.RECREATE_IF_BROKEN, repair=bad_repair)
        report = run_plan(Plan(name="p", steps=[step]))
        assert report.failure.error_kind == ErrorKind.STATE_BROKEN
        assert "permission denied" in report.failure.detail

    def test_repair_reporting_state_broken_keeps_message(self):
        a = FakeArtifact(SatisfiedState.BROKEN)

        def refuse():
            raise StateBroken("venv is a mount point")

        step = _step("venv", a, on_mismatch=RepairPolicy.RECREATE_IF_BROKEN, repair=refuse)
        report = run_plan(Plan(name="p", steps=[step]))
        assert report.failure.error_kind == ErrorKind.STATE_BROKEN
        assert report.failure.detail == "venv is a mount point"
        assert report.failure.probed == SatisfiedState.BROKEN
        assert a.applies == 0

    def test_dry_run_does_not_repair(self):
        a = FakeArtifact(SatisfiedState.BROKEN)
        step = _step("venv", a, on_mismatch=RepairPolicy.RECREATE_IF_BROKEN, repair=a.repair)
        report = run_plan(Plan(name="p", steps=[step]), dry_run=True)
        assert report.planned == ["venv"]
        assert a.repairs == 0


# ── Failure handling ─────────────────────────────────────────────────


class TestFailures:
    def test_mandatory_failure_halts(self):
        first, last = FakeArtifact(), FakeArtifact()
        steps = [
            _step("first", first),
            _failing_step("pkgs", PackageUnavailable(["python3-foo"])),
            _step("last", last),
        ]
        report = run_plan(Plan(name="p", steps=steps))
        assert not report.ok
        assert report.status == "failed"
        assert report.failure.step_name == "pkgs"
        assert report.failure.error_kind == ErrorKind.PACKAGE_UNAVAILABLE
        assert "python3-foo" in report.failure.detail
        assert first.applies == 1
        assert last.applies == 0
        assert "last" not in report.log.decisions()

    def test_optional_failure_degrades(self):
        last = FakeArtifact()
        steps = [
            _failing_step("firewall", HealthCheckFailed("ufw down"), optional=True),
            _step("last", last),
        ]
        report = run_plan(Plan(name="p", steps=steps))
        assert report.ok
        assert report.status == "degraded"
        assert report.log.decisions()["firewall"] == Decision.WARNED
        assert report.warnings == ["firewall: ufw down"]
        assert last.applies == 1

    def test_failed_receipt_halts_with_its_kind(self):
        step = Step(
            name="svc",
            probe=lambda: SatisfiedState.MISSING,
            apply=lambda: Receipt.failure("svc", "inactive", kind=ErrorKind.HEALTH_CHECK_FAILED),
        )
        report = run_plan(Plan(name="p", steps=[step]))
        assert report.failure.error_kind == ErrorKind.HEALTH_CHECK_FAILED

    def test_unexpected_exception_is_apply_failed(self):
        report = run_plan(Plan(name="p", steps=[_failing_step("x", RuntimeError("kaboom"))]))
        assert report.failure.error_kind == ErrorKind.APPLY_FAILED
        assert "kaboom" in report.failure.detail

    def test_probe_exception_fails_step(self):
        def probe():
            raise ValueError("bad probe")

        step = Step(name="x", probe=probe, apply=lambda: Receipt.success("x"))
        report = run_plan(Plan(name="p", steps=[step]))
        assert report.failure.step_name == "x"

    def test_apply_that_does_not_converge_fails(self):
        step = Step(
            name="liar",
            probe=lambda: SatisfiedState.MISSING,
            apply=lambda: Receipt.success("liar"),
        )
        report = run_plan(Plan(name="p", steps=[step]))
        assert report.failure.error_kind == ErrorKind.APPLY_FAILED
        assert "did not converge" in report.failure.detail

    def test_verify_disabled_trusts_apply(self):
        step = Step(
            name="check",
            probe=lambda: SatisfiedState.MISSING,
            apply=lambda: Receipt.success("check"),
            verify=False,
        )
        assert run_plan(Plan(name="p", steps=[step])).ok

    def test_skip_receipt_is_recorded_as_skipped_with_warnings(self):
        step = Step(
            name="opt",
            probe=lambda: SatisfiedState.MISSING,
            apply=lambda: Receipt.skip("opt", "none available", warnings=["no candidate: foo"]),
            optional=True,
        )
        report = run_plan(Plan(name="p", steps=[step]))
        assert report.skipped == ["opt"]
        assert report.warnings == ["opt: no candidate: foo"]
        assert report.status == "degraded"


# ── Dry run ──────────────────────────────────────────────────────────


class TestDryRun:
    def test_nothing_is_applied(self):
        a, b = FakeArtifact(), FakeArtifact(SatisfiedState.SATISFIED)
        report = run_plan(Plan(name="p", steps=[_step("a", a), _step("b", b)]), dry_run=True)
        assert report.dry_run
        assert report.planned == ["a"]
        assert report.skipped == ["b"]
        assert a.applies == 0


# ── Report ───────────────────────────────────────────────────────────


class TestRunReport:
    def test_run_id_format(self):
        run_id = generate_run_id()
        assert run_id.startswith("run-")
        assert len(run_id.split("-")) == 4

    def test_explicit_run_id(self):
        report = run_plan(Plan(name="p", steps=[]), run_id="run-test")
        assert report.run_id == "run-test"
        assert report.log.run_id == "run-test"

    def test_to_dict(self):
        report = run_plan(Plan(name="p", steps=[_step("a", FakeArtifact())]))
        d = report.to_dict()
        assert d["status"] == "ok"
        assert d["applied"] == ["a"]
        assert d["failure"] is None
        assert d["log"][0]["step_name"] == "a"
