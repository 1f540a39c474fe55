# ============================================================================
# SCHEDULER ADAPTER TESTS
# ============================================================================
# EPOCH: 1 - PERSISTENT WORKER POOLS
# STATUS: Tests - submit / poll / cancel against canned CLI output
# PURPOSE: Verify each backend parses its scheduler's output correctly
# CREATED: 19 OCT 2026
# ============================================================================
"""
Scheduler Adapter Tests

Every backend is driven through FakeCommandRunner, so no scheduler needs
to be installed.

Run with:
    pytest tests/test_scheduler_adapters.py -v
"""

import asyncio

import pytest

from core.contracts import JobState, SchedulerKind
from core.errors import SchedulerCommandError, SubmissionError
from core.models import WorkerPoolConfig
from scheduler import LSFAdapter, PBSAdapter, SGEAdapter, SlurmAdapter, get_adapter
from scheduler.sge import map_sge_state
from scheduler.slurm import map_slurm_state


def _script(adapter, worker_id="small-1"):
    return adapter.build_script(WorkerPoolConfig(name="small"), worker_id, "python -m worker.main")


# ============================================================================
# SLURM
# ============================================================================

class TestSlurmSubmit:

    def test_parsable_output_with_cluster(self, runner):
        runner.add("sbatch", stdout="12345;cluster1\n")
        adapter = SlurmAdapter(runner=runner)
        script = _script(adapter)

        job_id = asyncio.run(adapter.submit(script))

        assert job_id == "12345"
        argv, stdin = runner.calls[0]
        assert argv == ["sbatch", "--parsable"]
        assert stdin == script.text

    def test_rejected_submission(self, runner):
        runner.add("sbatch", returncode=1, stderr="sbatch: error: invalid partition specified: nope")
        adapter = SlurmAdapter(runner=runner)

        with pytest.raises(SubmissionError, match="invalid partition") as exc_info:
            asyncio.run(adapter.submit(_script(adapter)))
        assert exc_info.value.pool_name == "small"
        assert exc_info.value.worker_id == "small-1"

    def test_unparsable_output(self, runner):
        runner.add("sbatch", stdout="Submitted nothing\n")
        adapter = SlurmAdapter(runner=runner)

        with pytest.raises(SubmissionError, match="could not parse"):
            asyncio.run(adapter.submit(_script(adapter)))

    def test_submit_timeout(self, runner):
        runner.add("sbatch", raises=asyncio.TimeoutError())
        adapter = SlurmAdapter(runner=runner)

        with pytest.raises(SubmissionError, match="timed out"):
            asyncio.run(adapter.submit(_script(adapter)))


class TestSlurmPoll:

    def test_live_job_from_squeue(self, runner):
        runner.add("squeue", stdout="RUNNING\n")
        adapter = SlurmAdapter(runner=runner)

        assert asyncio.run(adapter.poll("12345")) == JobState.RUNNING
        assert runner.argvs("sacct") == []

    def test_pending_job(self, runner):
        runner.add("squeue", stdout="PENDING\n")
        assert asyncio.run(SlurmAdapter(runner=runner).poll("1")) == JobState.QUEUED

    def test_finished_job_from_sacct(self, runner):
        runner.add("squeue", returncode=1, stderr="slurm_load_jobs error: Invalid job id specified")
        runner.add("sacct", stdout="CANCELLED by 0\n")

        assert asyncio.run(SlurmAdapter(runner=runner).poll("12345")) == JobState.FAILED

    def test_completed_job_from_sacct(self, runner):
        runner.add("squeue", stdout="")
        runner.add("sacct", stdout="COMPLETED\n")

        assert asyncio.run(SlurmAdapter(runner=runner).poll("12345")) == JobState.COMPLETED

    def test_no_record_anywhere(self, runner):
        runner.add("squeue", stdout="")
        runner.add("sacct", stdout="")

        assert asyncio.run(SlurmAdapter(runner=runner).poll("12345")) == JobState.UNKNOWN

    def test_accounting_failure_raises(self, runner):
        runner.add("squeue", stdout="")
        runner.add("sacct", returncode=1, stderr="sacct: error: Problem talking to the database")

        with pytest.raises(SchedulerCommandError) as exc_info:
            asyncio.run(SlurmAdapter(runner=runner).poll("12345"))
        assert exc_info.value.returncode == 1

    @pytest.mark.parametrize("raw,expected", [
        ("RUNNING", JobState.RUNNING),
        ("COMPLETING", JobState.RUNNING),
        ("TIMEOUT", JobState.FAILED),
        ("NODE_FAIL", JobState.FAILED),
        ("OUT_OF_MEMORY", JobState.FAILED),
        ("CANCELLED+", JobState.FAILED),
        ("SOMETHING_NEW", JobState.UNKNOWN),
        ("", JobState.UNKNOWN),
    ])
    def test_state_mapping(self, raw, expected):
        assert map_slurm_state(raw) == expected


class TestSlurmCancel:

    def test_cancel(self, runner):
        runner.add("scancel")
        asyncio.run(SlurmAdapter(runner=runner).cancel("12345"))
        assert runner.argvs("scancel") == [["scancel", "12345"]]

    def test_cancel_finished_job_is_noop(self, runner):
        runner.add("scancel", returncode=1, stderr="scancel: error: Invalid job id specified")
        asyncio.run(SlurmAdapter(runner=runner).cancel("12345"))

    def test_cancel_other_error_raises(self, runner):
        runner.add("scancel", returncode=1, stderr="scancel: error: Access/permission denied")
        with pytest.raises(SchedulerCommandError, match="permission denied"):
            asyncio.run(SlurmAdapter(runner=runner).cancel("12345"))

    def test_cancel_timeout(self, runner):
        runner.add("scancel", raises=asyncio.TimeoutError())
        with pytest.raises(SchedulerCommandError):
            asyncio.run(SlurmAdapter(runner=runner).cancel("12345"))


# ============================================================================
# PBS
# ============================================================================

QSTAT_FINISHED = """Job Id: 4242.pbs-server
    Job_Name = small-1
    job_state = F
    queue = workq
    Exit_status = {exit_status}
"""


class TestPBS:

    def test_submit(self, runner):
        runner.add("qsub", stdout="4242.pbs-server\n")
        adapter = PBSAdapter(runner=runner)
        assert asyncio.run(adapter.submit(_script(adapter))) == "4242.pbs-server"

    def test_running(self, runner):
        runner.add("qstat", stdout="Job Id: 4242.pbs-server\n    job_state = R\n")
        assert asyncio.run(PBSAdapter(runner=runner).poll("4242.pbs-server")) == JobState.RUNNING
        assert runner.argvs("qstat") == [["qstat", "-x", "-f", "4242.pbs-server"]]

    def test_finished_cleanly(self, runner):
        runner.add("qstat", stdout=QSTAT_FINISHED.format(exit_status=0))
        assert asyncio.run(PBSAdapter(runner=runner).poll("4242")) == JobState.COMPLETED

    def test_killed_by_signal(self, runner):
        runner.add("qstat", stdout=QSTAT_FINISHED.format(exit_status=271))
        assert asyncio.run(PBSAdapter(runner=runner).poll("4242")) == JobState.FAILED

    def test_unknown_job(self, runner):
        runner.add("qstat", returncode=153, stderr="qstat: Unknown Job Id 4242.pbs-server")
        assert asyncio.run(PBSAdapter(runner=runner).poll("4242.pbs-server")) == JobState.UNKNOWN

    def test_server_down_raises(self, runner):
        runner.add("qstat", returncode=15010, stderr="Connection refused")
        with pytest.raises(SchedulerCommandError):
            asyncio.run(PBSAdapter(runner=runner).poll("4242"))

    def test_cancel_finished_job_is_noop(self, runner):
        runner.add("qdel", returncode=35, stderr="qdel: Job has finished 4242.pbs-server")
        asyncio.run(PBSAdapter(runner=runner).cancel("4242.pbs-server"))


# ============================================================================
# SGE
# ============================================================================

QSTAT_LISTING = """job-ID  prior   name       user         state submit/start at     queue                          slots ja-task-ID
-----------------------------------------------------------------------------------------------------------------
    777 0.55500 small-1    hpcuser      r     10/19/2026 09:12:01 all.q@node01                       1
    778 0.55500 small-2    hpcuser      qw    10/19/2026 09:12:03                                    1
"""


class TestSGE:

    def test_submit_terse(self, runner):
        runner.add("qsub", stdout="777\n")
        adapter = SGEAdapter(runner=runner)
        assert asyncio.run(adapter.submit(_script(adapter))) == "777"
        assert runner.argvs("qsub") == [["qsub", "-terse"]]

    def test_running_from_listing(self, runner):
        runner.add("qstat", stdout=QSTAT_LISTING)
        assert asyncio.run(SGEAdapter(runner=runner).poll("777")) == JobState.RUNNING

    def test_queued_from_listing(self, runner):
        runner.add("qstat", stdout=QSTAT_LISTING)
        assert asyncio.run(SGEAdapter(runner=runner).poll("778")) == JobState.QUEUED

    def test_finished_from_accounting(self, runner):
        runner.add("qstat", stdout=QSTAT_LISTING)
        runner.add("qacct", stdout="jobnumber    779\nfailed       0\nexit_status  0\n")
        assert asyncio.run(SGEAdapter(runner=runner).poll("779")) == JobState.COMPLETED

    def test_failed_from_accounting(self, runner):
        runner.add("qstat", stdout=QSTAT_LISTING)
        runner.add("qacct", stdout="jobnumber    779\nfailed       100 : assumedly after job\nexit_status  137\n")
        assert asyncio.run(SGEAdapter(runner=runner).poll("779")) == JobState.FAILED

    def test_forgotten_job(self, runner):
        runner.add("qstat", stdout=QSTAT_LISTING)
        runner.add("qacct", returncode=1, stderr="error: job id 900 not found")
        assert asyncio.run(SGEAdapter(runner=runner).poll("900")) == JobState.UNKNOWN

    @pytest.mark.parametrize("code,expected", [
        ("qw", JobState.QUEUED),
        ("hqw", JobState.QUEUED),
        ("r", JobState.RUNNING),
        ("t", JobState.RUNNING),
        ("Eqw", JobState.FAILED),
        ("", JobState.UNKNOWN),
    ])
    def test_state_codes(self, code, expected):
        assert map_sge_state(code) == expected


# ============================================================================
# LSF
# ============================================================================

class TestLSF:

    def test_submit(self, runner):
        runner.add("bsub", stdout="Job <5555> is submitted to queue <normal>.\n")
        adapter = LSFAdapter(runner=runner)
        assert asyncio.run(adapter.submit(_script(adapter))) == "5555"

    @pytest.mark.parametrize("stat,expected", [
        ("PEND", JobState.QUEUED),
        ("RUN", JobState.RUNNING),
        ("DONE", JobState.COMPLETED),
        ("EXIT", JobState.FAILED),
    ])
    def test_poll(self, runner, stat, expected):
        runner.add("bjobs", stdout=f"{stat}\n")
        assert asyncio.run(LSFAdapter(runner=runner).poll("5555")) == expected

    def test_job_not_found(self, runner):
        runner.add("bjobs", returncode=255, stderr="Job <5555> is not found")
        assert asyncio.run(LSFAdapter(runner=runner).poll("5555")) == JobState.UNKNOWN

    def test_cancel_finished_job_is_noop(self, runner):
        runner.add("bkill", returncode=255, stderr="Job <5555>: Job has already finished")
        asyncio.run(LSFAdapter(runner=runner).cancel("5555"))


class TestAdapterLookup:

    @pytest.mark.parametrize("kind,cls", [
        ("slurm", SlurmAdapter),
        (SchedulerKind.PBS, PBSAdapter),
        ("sge", SGEAdapter),
        ("lsf", LSFAdapter),
    ])
    def test_get_adapter(self, kind, cls):
        assert isinstance(get_adapter(kind), cls)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            get_adapter("htcondor")

    def test_adapters_name_their_commands(self):
        for kind in SchedulerKind:
            assert get_adapter(kind).commands

    def test_command_timeout_from_environment(self, monkeypatch):
        monkeypatch.setenv("SCHEDULER_COMMAND_TIMEOUT_SECONDS", "5")
        assert get_adapter("slurm").runner.timeout_seconds == 5.0

    def test_explicit_runner_is_kept(self, runner):
        assert get_adapter("lsf", runner=runner).runner is runner
