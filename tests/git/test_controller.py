"""Tests for SyncController with a scripted git runner."""

import asyncio
import json

import pytest

from reposync.core.events import (
    OPERATION_FINISHED,
    OPERATION_STARTED,
    PULL_COMPLETED,
    SNAPSHOT_REFRESHED,
)
from reposync.git.controller import BUSY_MESSAGE, NOT_A_REPOSITORY_MESSAGE
from reposync.git.errors import GitErrorKind
from reposync.git.reconciler import AHEAD_RANGE, BEHIND_RANGE


async def _start(controller, runner, *, status="", behind=0, ahead=0):
    """Initialize the controller against a scripted repository state."""
    runner.clean_repo()
    runner.ok("status", stdout=status)
    runner.ok("rev-list", BEHIND_RANGE, stdout=f"{behind}\n")
    runner.ok("rev-list", AHEAD_RANGE, stdout=f"{ahead}\n")
    if behind:
        runner.ok("log", BEHIND_RANGE, stdout="\n".join(f"b{i} remote" for i in range(behind)))
    if ahead:
        runner.ok("log", AHEAD_RANGE, stdout="\n".join(f"a{i} local" for i in range(ahead)))
    result = await controller.initialize()
    assert result.success, result.message
    runner.calls.clear()
    return controller


def _collect(event_bus, name):
    seen = []

    async def handler(event):
        seen.append(event)

    event_bus.subscribe(name, handler)
    return seen


class TestInitialize:
    async def test_clean_repository(self, controller, runner, sync_session):
        runner.clean_repo()
        result = await controller.initialize()
        assert result.success
        assert sync_session.repo_detected
        assert sync_session.remote_url == "git@example.com:team/project.git"
        assert sync_session.git_version == "git version 2.43.0"
        assert sync_session.status_message == "Local repository is clean. Fetch remote status?"
        assert sync_session.snapshot.upstream_ref == "origin/main"
        assert sync_session.last_refreshed is not None
        assert not sync_session.busy

    async def test_not_a_repository(self, controller, runner, repo_dir, sync_session):
        (repo_dir / ".git").rmdir()
        runner.clean_repo()
        result = await controller.initialize()
        assert not result.success
        assert result.error_kind is GitErrorKind.NOT_A_REPOSITORY
        assert sync_session.status_message == NOT_A_REPOSITORY_MESSAGE
        assert not runner.called("status")

    async def test_no_such_remote(self, controller, runner, sync_session):
        runner.clean_repo()
        runner.fail("remote", "get-url", stderr="error: No such remote 'origin'", returncode=2)
        result = await controller.initialize()
        assert not result.success
        assert sync_session.status_message == "Error: No remote named 'origin' found."
        assert result.operation == "Initialize"
        assert not sync_session.repo_detected
        assert not runner.called("status")

    async def test_empty_remote_url(self, controller, runner, sync_session):
        runner.clean_repo()
        runner.ok("remote", "get-url", stdout="\n")
        result = await controller.initialize()
        assert not result.success
        assert "URL is empty" in sync_session.status_message

    async def test_remotes_listed_origin_first(self, controller, runner, sync_session):
        runner.clean_repo()
        runner.ok("remote", stdout="fork\norigin\n")
        await controller.initialize()
        assert sync_session.available_remotes == ["origin", "fork"]
        assert sync_session.selected_remote == "origin"

    async def test_no_remotes_defaults_to_origin(self, controller, runner, sync_session):
        runner.clean_repo()
        runner.ok("remote", stdout="")
        await controller.initialize()
        assert sync_session.available_remotes == ["origin"]

    async def test_renders_panel(self, controller, runner, mock_panel):
        runner.clean_repo()
        await controller.initialize()
        assert mock_panel.renders
        assert mock_panel.renders[-1].startswith("Status: ")


class TestBusyMachine:
    async def test_trigger_while_busy_is_noop(self, controller, runner, sync_session, mock_panel):
        sync_session.busy = True
        sync_session.current_operation = "Fetch"
        result = await controller.push()
        assert result.skipped
        assert result.message == BUSY_MESSAGE
        assert runner.calls == []
        assert mock_panel.renders == []
        assert sync_session.busy

    async def test_second_trigger_during_operation_ignored(self, controller, runner):
        await _start(controller, runner, behind=2)
        release = asyncio.Event()
        original_run = runner.run

        async def slow_run(*args, cwd):
            if args[0] == "fetch":
                await release.wait()
            return await original_run(*args, cwd=cwd)

        runner.run = slow_run
        first = asyncio.create_task(controller.fetch())
        await asyncio.sleep(0)
        assert controller.session.busy
        assert controller.session.current_operation == "Fetch"

        second = await controller.stage_all()
        assert second.skipped
        assert second.message == BUSY_MESSAGE

        release.set()
        assert (await first).success
        assert not controller.session.busy
        assert controller.session.current_operation is None

    async def test_cancel_during_start_event_releases_busy(self, controller, runner, event_bus):
        await _start(controller, runner)

        async def slow_handler(event):
            await asyncio.sleep(1)

        event_bus.subscribe(OPERATION_STARTED, slow_handler)
        with pytest.raises(TimeoutError):
            await asyncio.wait_for(controller.fetch(), timeout=0.05)
        assert not controller.session.busy
        assert controller.session.current_operation is None
        assert not runner.called("fetch")

        event_bus.unsubscribe(OPERATION_STARTED, slow_handler)
        result = await controller.refresh()
        assert result.success
        assert not result.skipped

    async def test_exception_releases_busy(self, controller, runner, sync_session):
        await _start(controller, runner)
        runner.raise_on("fetch", error=RuntimeError("boom"))
        result = await controller.fetch()
        assert not result.success
        assert result.message == "Error during 'Fetch'. Check the log for details."
        assert sync_session.status_message == result.message
        assert not sync_session.busy
        assert not sync_session.fetch_completed
        # refresh still runs after the failure
        assert runner.called("status")

    async def test_every_mutation_is_followed_by_refresh(self, controller, runner):
        await _start(controller, runner, status=" M a.txt\n")
        await controller.stage_all()
        subcommands = [call[0] for call in runner.calls]
        assert subcommands[0] == "add"
        assert "status" in subcommands[1:]

    async def test_failed_mutation_is_followed_by_refresh(self, controller, runner):
        await _start(controller, runner, status=" M a.txt\n")
        runner.fail("add", stderr="fatal: Unable to create index.lock: File exists")
        result = await controller.stage_all()
        assert not result.success
        assert runner.called("status")

    async def test_events_emitted(self, controller, runner, event_bus):
        started = _collect(event_bus, OPERATION_STARTED)
        finished = _collect(event_bus, OPERATION_FINISHED)
        refreshed = _collect(event_bus, SNAPSHOT_REFRESHED)
        await _start(controller, runner)
        assert [e.data["operation"] for e in started] == ["Initialize"]
        assert finished[0].data["result"]["success"] is True
        assert len(refreshed) == 1


class TestGating:
    async def test_denied_action_does_not_run_git(self, controller, runner, mock_panel, sync_session):
        await _start(controller, runner)
        result = await controller.stage_all()
        assert result.skipped
        assert result.message == "Nothing to stage."
        assert runner.calls == []
        assert mock_panel.notifications[-1] == "Stage All Blocked"
        assert sync_session.status_message == "Nothing to stage."

    async def test_actions_require_detected_repository(self, controller, runner):
        result = await controller.fetch()
        assert result.skipped
        assert result.message == "No repository or remote detected."
        assert runner.calls == []

    async def test_refresh_requires_repository(self, controller, runner, repo_dir):
        (repo_dir / ".git").rmdir()
        result = await controller.refresh()
        assert result.skipped
        assert result.message == NOT_A_REPOSITORY_MESSAGE

    async def test_behind_remote_pull_enabled_after_fetch(self, controller, runner):
        await _start(controller, runner, behind=3)
        assert controller.session.snapshot.behind_count == 3
        assert not controller.gates().pull
        await controller.fetch()
        assert controller.session.fetch_completed
        assert controller.gates().pull
        assert controller.session.snapshot.pull_log.entries == ["b0 remote", "b1 remote", "b2 remote"]


class TestFetch:
    async def test_success(self, controller, runner, mock_panel):
        await _start(controller, runner)
        result = await controller.fetch()
        assert result.success
        assert runner.calls[0] == ("fetch", "origin")
        assert controller.session.status_message == "Repository is clean and up-to-date."
        assert mock_panel.notifications[-1] == "Fetch successful."

    async def test_failure_clears_fetch_flag(self, controller, runner):
        await _start(controller, runner)
        runner.fail("fetch", stderr="fatal: unable to access: Could not resolve host: example.com")
        result = await controller.fetch()
        assert not result.success
        assert result.error_kind is GitErrorKind.NETWORK
        assert result.message.startswith("Network Error")
        assert not controller.session.fetch_completed


class TestPull:
    async def test_requires_fetch(self, controller, runner, mock_panel):
        await _start(controller, runner, behind=1)
        result = await controller.pull()
        assert result.skipped
        assert result.message == "Fetch remote status before pulling."
        assert mock_panel.notifications[-1] == "Pull Blocked"
        assert not runner.called("pull")

    async def test_success_emits_event(self, controller, runner, event_bus):
        pulled = _collect(event_bus, PULL_COMPLETED)
        await _start(controller, runner, behind=2)
        await controller.fetch()
        runner.ok("rev-list", BEHIND_RANGE, stdout="0\n")
        result = await controller.pull()
        assert result.success
        assert result.message == "Pull successful."
        assert len(pulled) == 1
        assert not controller.session.snapshot.is_behind_remote

    async def test_uncommitted_changes_cancelled(self, controller, runner, mock_panel):
        await _start(controller, runner, status=" M a.txt\n", behind=1)
        await controller.fetch()
        mock_panel.confirm_answer = False
        result = await controller.pull()
        assert result.skipped
        assert result.message == "Pull cancelled due to uncommitted changes."
        assert mock_panel.confirmations[-1]["title"] == "Uncommitted Changes"
        assert not runner.called("pull")
        assert not controller.session.busy

    async def test_uncommitted_changes_confirmed(self, controller, runner, mock_panel):
        await _start(controller, runner, status=" M a.txt\n", behind=1)
        await controller.fetch()
        result = await controller.pull()
        assert result.success
        assert runner.called("pull")

    async def test_conflicts_after_pull(self, controller, runner):
        await _start(controller, runner, behind=1)
        await controller.fetch()
        runner.ok("status", stdout="UU c.txt\n")
        result = await controller.pull()
        assert not result.success
        assert result.error_kind is GitErrorKind.MERGE_CONFLICT
        assert "MERGE CONFLICTS" in result.message
        assert controller.session.snapshot.has_conflicts
        assert controller.session.status_message == result.message

    async def test_failure_mentioning_conflict(self, controller, runner):
        await _start(controller, runner, behind=1)
        await controller.fetch()
        runner.fail(
            "pull",
            stderr="CONFLICT (content): Merge conflict in a.txt\n"
            "Automatic merge failed; fix conflicts and then commit the result.",
        )
        result = await controller.pull()
        assert not result.success
        assert result.error_kind is GitErrorKind.MERGE_CONFLICT


class TestPush:
    async def test_success(self, controller, runner):
        await _start(controller, runner, ahead=2)
        runner.ok("push", stderr="To example.com:team/project.git\n   abc..def  main -> main\n")
        result = await controller.push()
        assert result.success
        assert result.message == "Push successful (2 commit(s))."

    async def test_everything_up_to_date(self, controller, runner):
        await _start(controller, runner, ahead=1)
        runner.ok("push", stderr="Everything up-to-date\n")
        result = await controller.push()
        assert result.message == "Push successful (already up-to-date)."

    async def test_non_fast_forward_rejected(self, controller, runner, audit_logger):
        await _start(controller, runner, ahead=1)
        runner.fail(
            "push",
            stderr=" ! [rejected]        main -> main (non-fast-forward)\n"
            "error: failed to push some refs to 'example.com:team/project.git'\n",
        )
        result = await controller.push()
        assert not result.success
        assert result.error_kind is GitErrorKind.NON_FAST_FORWARD
        assert result.message.startswith("Push Rejected")
        assert "[rejected]" in result.details
        # local state is re-read, not assumed
        assert controller.session.snapshot.is_ahead_remote

        records = [json.loads(line) for line in audit_logger.path.read_text().splitlines()]
        assert records[-1]["operation"] == "Push"
        assert records[-1]["success"] is False
        assert records[-1]["error_kind"] == "non_fast_forward"

    async def test_nothing_to_push_denied(self, controller, runner):
        await _start(controller, runner)
        result = await controller.push()
        assert result.skipped
        assert result.message == "Nothing to push."


class TestStaging:
    async def test_stage_file(self, controller, runner, mock_panel):
        await _start(controller, runner, status=" M src/a.txt\n")
        result = await controller.stage_file("src/a.txt")
        assert result.success
        assert runner.calls[0] == ("add", "--", "src/a.txt")
        assert mock_panel.notifications[-1] == "Staged: a.txt"

    async def test_stage_conflicted_file_denied(self, controller, runner):
        await _start(controller, runner, status="UU c.txt\n")
        result = await controller.stage_file("c.txt")
        assert result.skipped
        assert not runner.called("add")

    async def test_unstage_file(self, controller, runner):
        await _start(controller, runner, status="M  a.txt\n")
        result = await controller.unstage_file("a.txt")
        assert result.success
        assert runner.calls[0] == ("reset", "HEAD", "--", "a.txt")

    async def test_unstage_all(self, controller, runner):
        await _start(controller, runner, status="M  a.txt\n")
        result = await controller.unstage_all()
        assert result.success
        assert runner.calls[0] == ("reset",)

    async def test_stage_all(self, controller, runner):
        await _start(controller, runner, status="?? new.txt\n")
        result = await controller.stage_all()
        assert result.success
        assert runner.calls[0] == ("add", ".")


class TestDiscard:
    async def test_confirmed(self, controller, runner, mock_panel):
        await _start(controller, runner, status=" M a.txt\n")
        result = await controller.discard_file("a.txt")
        assert result.success
        assert mock_panel.confirmations[-1]["ok"] == "Discard Changes"
        assert runner.calls[0] == ("checkout", "--", "a.txt")

    async def test_cancelled(self, controller, runner, mock_panel):
        await _start(controller, runner, status=" M a.txt\n")
        mock_panel.confirm_answer = False
        result = await controller.discard_file("a.txt")
        assert result.skipped
        assert not runner.called("checkout")

    async def test_untracked_denied(self, controller, runner, mock_panel):
        await _start(controller, runner, status="?? new.txt\n")
        result = await controller.discard_file("new.txt")
        assert result.skipped
        assert result.message == "Cannot discard untracked file via checkout."
        assert mock_panel.confirmations == []


class TestCommit:
    async def test_success_clears_message(self, controller, runner):
        await _start(controller, runner, status="M  a.txt\n")
        runner.ok("commit", stdout="[main abc1234] Fix typo\n 1 file changed\n")
        result = await controller.commit('Fix "typo"')
        assert result.success
        assert runner.calls[0] == ("commit", "-m", 'Fix "typo"')
        assert controller.session.commit_message == ""

    async def test_uses_session_draft(self, controller, runner):
        await _start(controller, runner, status="M  a.txt\n")
        controller.session.commit_message = "Draft"
        await controller.commit()
        assert runner.calls[0] == ("commit", "-m", "Draft")

    async def test_blank_message_denied(self, controller, runner):
        await _start(controller, runner, status="M  a.txt\n")
        result = await controller.commit("   ")
        assert result.skipped
        assert result.message == "Commit message cannot be empty."
        assert not runner.called("commit")

    async def test_nothing_to_commit(self, controller, runner):
        await _start(controller, runner, status="M  a.txt\n")
        runner.ok("commit", stdout="nothing to commit, working tree clean\n")
        result = await controller.commit("msg")
        assert result.success
        assert result.message == "Commit resulted in 'nothing to commit'."

    async def test_behind_remote_denied(self, controller, runner):
        await _start(controller, runner, status="M  a.txt\n", behind=1)
        result = await controller.commit("msg")
        assert result.skipped
        assert "behind" in result.message


class TestSetUpstream:
    async def test_success(self, controller, runner):
        await _start(controller, runner)
        runner.ok("rev-parse", "HEAD", stdout="feature\n")
        result = await controller.set_upstream()
        assert result.success
        assert ("push", "--set-upstream", "origin", "feature") in runner.calls
        assert result.message == "Upstream set for 'feature' to origin/feature."

    async def test_detached_head(self, controller, runner):
        await _start(controller, runner)
        runner.ok("rev-parse", "HEAD", stdout="HEAD\n")
        result = await controller.set_upstream()
        assert not result.success
        assert "detached HEAD" in result.message
        assert not runner.called("push")

    async def test_branch_lookup_failure(self, controller, runner):
        await _start(controller, runner)
        runner.fail("rev-parse", "HEAD", stderr="fatal: ambiguous argument 'HEAD'", returncode=128)
        result = await controller.set_upstream()
        assert result.message == "Error: Could not determine current branch name."

    async def test_bad_refspec_hint(self, controller, runner):
        await _start(controller, runner)
        runner.ok("rev-parse", "HEAD", stdout="topic\n")
        runner.fail("push", "--set-upstream", stderr="error: src refspec topic does not match any")
        result = await controller.set_upstream()
        assert not result.success
        assert result.error_kind is GitErrorKind.BAD_REFSPEC
        assert result.message.endswith("The branch 'topic' might not exist locally or failed to push.")

    async def test_missing_remote_repository_hint(self, controller, runner):
        await _start(controller, runner)
        runner.ok("rev-parse", "HEAD", stdout="main\n")
        runner.fail(
            "push",
            "--set-upstream",
            stderr="fatal: 'origin' does not appear to be a git repository",
        )
        result = await controller.set_upstream()
        assert "Ensure the remote repository exists" in result.message


class TestSelectRemote:
    async def test_switch(self, controller, runner):
        runner.clean_repo()
        runner.ok("remote", stdout="origin\nfork\n")
        await controller.initialize()
        await controller.fetch()
        result = await controller.select_remote("fork")
        assert result.success
        assert result.operation == "Select Remote"
        assert controller.session.selected_remote == "fork"
        assert not controller.session.fetch_completed
        assert ("remote", "get-url", "fork") in runner.calls

    async def test_unknown_remote_denied(self, controller, runner):
        await _start(controller, runner)
        result = await controller.select_remote("nope")
        assert result.skipped
        assert controller.session.selected_remote == "origin"


class TestRefresh:
    @pytest.mark.parametrize("status", ["", " M a.txt\n"])
    async def test_refresh_rereads_state(self, controller, runner, status):
        await _start(controller, runner)
        runner.ok("status", stdout=status)
        result = await controller.refresh()
        assert result.success
        assert len(controller.session.snapshot.unstaged) == (1 if status else 0)

    async def test_refresh_not_audited(self, controller, runner, audit_logger):
        await _start(controller, runner)
        await controller.refresh()
        assert not audit_logger.path.exists()
