"""
Unit tests for autosave scheduling and the editor's global save.

Time is simulated with a manual clock; no test waits on real delays.
"""

import asyncio
import os
import shutil
import tempfile
from unittest.mock import AsyncMock, Mock

import pytest

from prompt_vault.core.editor import Editor, fallback_title
from prompt_vault.core.naming import NamingOutcome, NamingWorkflow
from prompt_vault.core.notifications import Notifier
from prompt_vault.core.scheduler import AutosaveScheduler, ScheduledTask
from prompt_vault.core.session_store import SaveMode, SessionStore
from prompt_vault.storage.models import DRAFT_FRAMEWORK
from prompt_vault.storage.repository import KeyValueStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestScheduledTask:
    """Test the debounce timer primitive."""

    def setup_method(self):
        self.clock = FakeClock()
        self.callback = AsyncMock()
        self.task = ScheduledTask(2.0, self.callback, self.clock)

    @pytest.mark.asyncio
    async def test_fires_after_delay(self):
        self.task.schedule()
        self.clock.advance(1.9)
        assert await self.task.fire_if_due() is False

        self.clock.advance(0.1)
        assert await self.task.fire_if_due() is True
        self.callback.assert_awaited_once()
        assert not self.task.pending

    @pytest.mark.asyncio
    async def test_reschedule_restarts_window(self):
        self.task.schedule()
        self.clock.advance(1.5)
        self.task.schedule()
        self.clock.advance(1.5)
        assert await self.task.fire_if_due() is False

        self.clock.advance(0.5)
        assert await self.task.fire_if_due() is True
        assert self.callback.await_count == 1

    @pytest.mark.asyncio
    async def test_cancel_prevents_firing(self):
        self.task.schedule()
        self.task.cancel()
        self.clock.advance(10)
        assert await self.task.fire_if_due() is False
        self.callback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fires_once_per_schedule(self):
        self.task.schedule()
        self.clock.advance(3)
        await self.task.fire_if_due()
        self.clock.advance(3)
        assert await self.task.fire_if_due() is False
        assert self.callback.await_count == 1


class TestFallbackTitle:

    def test_short_idea_is_kept_whole(self):
        assert fallback_title("Write a landing page") == "Write a landing page"

    def test_exactly_thirty_characters_has_no_ellipsis(self):
        idea = "x" * 30
        assert fallback_title(idea) == idea

    def test_long_idea_is_truncated(self):
        idea = "Design an onboarding email sequence for a fintech app"
        assert fallback_title(idea) == idea[:30] + "..."


class TestAutosaveScheduler:
    """Test debounced autosave against a real store."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.kv = KeyValueStore(os.path.join(self.temp_dir, "test.db"))
        self.notifier = Notifier()
        self.collaborator = Mock()
        self.collaborator.generate_session_title = AsyncMock(return_value={"text": "Landing Page Copy"})
        self.collaborator.generate_change_summary = AsyncMock(return_value="Changed.")
        self.store = SessionStore(self.kv, notifier=self.notifier, summarizer=self.collaborator)
        self.editor = Editor(self.store, title_generator=self.collaborator)
        self.clock = FakeClock()
        self.scheduler = AutosaveScheduler(self.editor, self.kv, idle_seconds=2.0, clock=self.clock)

    def teardown_method(self):
        self.scheduler.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _type(self, **fields) -> None:
        self.editor.edit(**fields)
        self.scheduler.on_edit()

    @pytest.mark.asyncio
    async def test_enabled_by_default(self):
        assert self.scheduler.enabled is True

    @pytest.mark.asyncio
    async def test_idle_draft_creates_titled_session(self):
        self._type(idea="Write a landing page")
        self.clock.advance(2.0)

        assert await self.scheduler.poll() is True

        sessions = self.store.sessions
        assert len(sessions) == 1
        assert len(sessions[0].versions) == 1
        assert sessions[0].versions[0].framework_acronym == DRAFT_FRAMEWORK
        assert sessions[0].name == "Landing Page Copy"
        assert self.store.active_session_id == sessions[0].id
        self.collaborator.generate_session_title.assert_awaited_once_with(
            "Write a landing page", self.editor.buffer.model
        )
        # Autosave stays silent
        assert self.notifier.history == []

    @pytest.mark.asyncio
    async def test_title_failure_falls_back_to_idea_text(self):
        self.collaborator.generate_session_title.side_effect = RuntimeError("timeout")
        self._type(idea="Write a landing page")
        self.clock.advance(2.0)

        await self.scheduler.poll()

        assert self.store.sessions[0].name == "Write a landing page"

    @pytest.mark.asyncio
    async def test_blank_title_falls_back(self):
        self.collaborator.generate_session_title.return_value = {"text": "  "}
        self._type(idea="Design an onboarding email sequence for a fintech app")
        self.clock.advance(2.0)

        await self.scheduler.poll()

        assert self.store.sessions[0].name == "Design an onboarding email seq..."

    @pytest.mark.asyncio
    async def test_short_idea_gets_no_title(self):
        self._type(idea="Short idea")
        self.clock.advance(2.0)

        await self.scheduler.poll()

        self.collaborator.generate_session_title.assert_not_awaited()
        assert self.store.sessions[0].name is None

    @pytest.mark.asyncio
    async def test_debounce_coalesces_rapid_edits(self):
        self._type(idea="Write a landing")
        self.clock.advance(1.0)
        self._type(idea="Write a landing page")
        self.clock.advance(1.5)
        assert await self.scheduler.poll() is False
        assert self.store.sessions == []

        self.clock.advance(0.5)
        assert await self.scheduler.poll() is True
        assert self.store.sessions[0].versions[0].idea == "Write a landing page"

    @pytest.mark.asyncio
    async def test_autosave_on_existing_session_never_grows_history(self):
        self.editor.edit(idea="Write a landing page", generated_prompt="v1")
        await self.editor.global_save(SaveMode.MANUAL)
        self.editor.edit(generated_prompt="v2")
        await self.editor.global_save(SaveMode.MANUAL)
        session_id = self.store.active_session_id

        for text in ("v2 a", "v2 ab", "v2 abc"):
            self._type(generated_prompt=text)
            self.clock.advance(2.0)
            await self.scheduler.poll()

        session = self.store.get(session_id)
        assert len(session.versions) == 2
        assert session.versions[0].optimized_prompt == "v2 abc"
        self.collaborator.generate_session_title.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_blank_buffer_does_not_schedule(self):
        self._type(idea="   ", generated_prompt="")
        assert not self.scheduler.pending

    @pytest.mark.asyncio
    async def test_disable_cancels_pending_save(self):
        self._type(idea="Write a landing page")
        self.scheduler.set_enabled(False)
        self.clock.advance(5.0)

        assert await self.scheduler.poll() is False
        assert self.store.sessions == []
        assert self.notifier.history[-1].message == "Autosave paused"

    @pytest.mark.asyncio
    async def test_edits_while_disabled_are_ignored(self):
        self.scheduler.set_enabled(False)
        self._type(idea="Write a landing page")
        assert not self.scheduler.pending

    @pytest.mark.asyncio
    async def test_enable_does_not_save_immediately(self):
        self.scheduler.set_enabled(False)
        self.editor.edit(idea="Write a landing page")
        self.scheduler.set_enabled(True)
        self.clock.advance(5.0)

        assert await self.scheduler.poll() is False
        assert self.store.sessions == []

        self.scheduler.on_edit()
        self.clock.advance(2.0)
        assert await self.scheduler.poll() is True

    @pytest.mark.asyncio
    async def test_preference_is_persisted(self):
        self.scheduler.toggle()
        reloaded = AutosaveScheduler(self.editor, self.kv, clock=self.clock)
        assert reloaded.enabled is False
        reloaded.close()

    @pytest.mark.asyncio
    async def test_close_cancels_pending_timer(self):
        self._type(idea="Write a landing page")
        self.scheduler.close()
        self.clock.advance(5.0)

        assert await self.scheduler.poll() is False
        self._type(idea="Write a landing page again")
        assert not self.scheduler.pending
        assert self.store.sessions == []

    async def _start_autosave_with_slow_title(self):
        """Fire an autosave whose title call blocks until released."""
        release = asyncio.Event()

        async def slow_title(idea, model):
            await release.wait()
            return {"text": "Landing Page Copy"}

        self.collaborator.generate_session_title.side_effect = slow_title
        self._type(idea="Write a landing page")
        self.clock.advance(2.0)
        pending = asyncio.create_task(self.scheduler.poll())
        for _ in range(5):
            await asyncio.sleep(0)
        self.collaborator.generate_session_title.assert_awaited_once()
        return pending, release

    @pytest.mark.asyncio
    async def test_discard_while_title_pending_drops_autosave(self):
        pending, release = await self._start_autosave_with_slow_title()

        workflow = NamingWorkflow(self.editor)
        assert workflow.request_new_session() == NamingOutcome.OPENED
        workflow.discard()
        release.set()
        await pending

        assert self.store.sessions == []
        assert self.store.active_session_id is None
        assert self.editor.is_empty

    @pytest.mark.asyncio
    async def test_reset_while_title_pending_drops_autosave(self):
        pending, release = await self._start_autosave_with_slow_title()

        self.editor.reset()
        release.set()
        await pending

        assert self.store.sessions == []

    @pytest.mark.asyncio
    async def test_manual_save_while_title_pending_wins(self):
        pending, release = await self._start_autosave_with_slow_title()

        self.editor.edit(generated_prompt="You are a copywriter")
        result = await self.editor.global_save(SaveMode.MANUAL)
        release.set()
        await pending

        session = self.store.get(result.session_id)
        assert len(self.store.sessions) == 1
        assert session.name is None
        assert len(session.versions) == 1
        assert session.versions[0].optimized_prompt == "You are a copywriter"
        assert self.store.active_session_id == result.session_id

    @pytest.mark.asyncio
    async def test_run_loop_stops_after_close(self):
        self._type(idea="Write a landing page")
        self.clock.advance(2.0)
        runner = asyncio.create_task(self.scheduler.run(interval=0.001))
        for _ in range(100):
            if self.store.sessions:
                break
            await asyncio.sleep(0.001)
        self.scheduler.close()
        await asyncio.wait_for(runner, timeout=1.0)

        assert len(self.store.sessions) == 1


class TestEditor:
    """Test buffer handling around loads, deletes and resets."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()
        self.notifier = Notifier()
        self.store = SessionStore(KeyValueStore(os.path.join(self.temp_dir, "test.db")), notifier=self.notifier)
        self.editor = Editor(self.store)

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    @pytest.mark.asyncio
    async def test_empty_buffer_save_is_noop(self):
        assert await self.editor.global_save(SaveMode.MANUAL) is None
        assert self.store.sessions == []

    @pytest.mark.asyncio
    async def test_load_specific_version_into_buffer(self):
        self.editor.edit(idea="Idea", generated_prompt="first", framework_acronym="RTF")
        await self.editor.global_save(SaveMode.MANUAL)
        self.editor.edit(generated_prompt="second")
        result = await self.editor.global_save(SaveMode.MANUAL)
        first = self.store.get(result.session_id).versions[1]
        self.editor.reset()

        assert self.editor.load(result.session_id, first.version_id)

        assert self.editor.buffer.generated_prompt == "first"
        assert self.editor.buffer.framework_acronym == "RTF"
        assert self.store.active_session_id == result.session_id
        assert self.notifier.history[-1].message == (
            "Version 1 loaded. Changes will update the current version."
        )

    def test_load_unknown_session(self):
        assert self.editor.load("missing") is False

    @pytest.mark.asyncio
    async def test_deleting_active_session_clears_buffer(self):
        self.editor.edit(idea="Idea", generated_prompt="text")
        result = await self.editor.global_save(SaveMode.MANUAL)

        self.editor.delete_session(result.session_id)

        assert self.editor.buffer.idea == ""
        assert self.editor.buffer.generated_prompt == ""
        assert self.store.active_session_id is None

    @pytest.mark.asyncio
    async def test_deleting_last_active_version_clears_buffer(self):
        self.editor.edit(idea="Idea", generated_prompt="text")
        result = await self.editor.global_save(SaveMode.MANUAL)
        version_id = self.store.get(result.session_id).versions[0].version_id

        deleted = self.editor.delete_version(result.session_id, version_id)

        assert deleted.cleared_active
        assert self.store.sessions == []
        assert self.editor.buffer.idea == ""
        assert self.editor.buffer.generated_prompt == ""

    @pytest.mark.asyncio
    async def test_deleting_older_version_keeps_buffer(self):
        self.editor.edit(idea="Idea", generated_prompt="first")
        await self.editor.global_save(SaveMode.MANUAL)
        self.editor.edit(generated_prompt="second")
        result = await self.editor.global_save(SaveMode.MANUAL)
        oldest = self.store.get(result.session_id).versions[1].version_id

        deleted = self.editor.delete_version(result.session_id, oldest)

        assert deleted.removed and not deleted.cleared_active
        assert self.editor.buffer.generated_prompt == "second"
        assert self.store.active_session_id == result.session_id

    @pytest.mark.asyncio
    async def test_reset_clears_buffer_and_iteration(self):
        self.editor.edit(idea="Idea", generated_prompt="text", use_case="Sales")
        await self.editor.global_save(SaveMode.MANUAL)

        self.editor.reset()

        assert self.editor.is_empty
        assert self.editor.buffer.use_case == "General"
        assert self.store.active_session_id is None
        assert self.editor.reset_key == 1

    def test_edit_unknown_field(self):
        with pytest.raises(AttributeError, match="Unknown buffer field"):
            self.editor.edit(colour="red")
