import pytest

from deferral.runtime import binder
from deferral.runtime.boundary import active_markers, active_unit, batch_unit, chunk, render_unit
from deferral.runtime.defer import defer, deferred_clear, deferred_run
from deferral.runtime.handlers import Handler, HandlerRegistry
from deferral.runtime.scope import GLOBAL_SCOPE, Scope, current_scope


class TestBatchUnit:
    """Tests for batch units."""

    def test_redirects_top_level_actions_to_unit_end(self, out):
        """Test that top-level actions in a script run when the script ends."""
        with batch_unit(GLOBAL_SCOPE):
            out.append("1")
            defer(lambda: out.append("deferred"))
            out.append("2")
        out.append("after")
        assert out == ["1", "2", "deferred", "after"]

    def test_evaluates_in_target(self):
        """Test that the target scope is current inside the unit."""
        with Scope() as scope:
            with batch_unit(scope) as unit:
                assert current_scope() is scope
                assert active_unit() is unit
            assert current_scope() is scope
        assert active_markers() == ()

    def test_local_target_keeps_actions_without_opt_in(self, out):
        """Test that a local target behaves normally unless hooking is enabled."""
        with Scope():
            with batch_unit():
                defer(lambda: out.append("deferred"))
            out.append("after unit")
        assert out == ["after unit", "deferred"]

    def test_local_target_redirected_with_opt_in(self, hook_source, out):
        """Test that DEFERRAL_HOOK_SOURCE redirects local targets."""
        with Scope():
            with batch_unit():
                defer(lambda: out.append("deferred"))
            out.append("after unit")
        assert out == ["deferred", "after unit"]

    def test_marker_popped_on_error(self, out):
        """Test that a failing unit still pops its marker and runs its actions."""
        with pytest.raises(ValueError):
            with batch_unit(GLOBAL_SCOPE):
                defer(lambda: out.append("deferred"))
                raise ValueError("script failed")
        assert out == ["deferred"]
        assert active_markers() == ()


class TestRenderUnit:
    """Tests for render units and chunks."""

    def test_buffers_chunk_actions_until_render_ends(self, out):
        """Test that actions from every chunk run together, newest first."""
        with render_unit() as unit:
            with chunk(unit):
                defer(lambda: out.append("defer 1"))
                out.append("1")
            with chunk(unit):
                defer(lambda: out.append("defer 2"))
                out.append("2")
            assert len(unit.registry) == 2
        assert out == ["1", "2", "defer 2", "defer 1"]
        assert unit.chunks_started == 2

    def test_single_trampoline(self):
        """Test that the registry is bound to the unit scope only once."""
        with render_unit() as unit:
            with chunk(unit):
                defer(lambda: None)
                defer(lambda: None)
                defer(lambda: None, priority="last")
            assert len(unit.scope.exit_actions()) == 1
            assert binder.is_bound(unit.scope, unit.registry)

    def test_release_from_chunk(self, out):
        """Test that deferred_run inside a chunk releases the render buffer."""
        with render_unit() as unit:
            with chunk(unit):
                defer(lambda: out.append("released"))
                assert deferred_run() == 1
                assert out == ["released"]
        assert out == ["released"]

    def test_clear_from_chunk(self, out):
        """Test that deferred_clear inside a chunk drops buffered actions."""
        with render_unit() as unit:
            with chunk(unit):
                defer(lambda: out.append("never"))
                assert deferred_clear() == 1
        assert out == []

    def test_existing_document_scope_is_not_exited(self, out):
        """Test that a caller-provided document scope outlives the render."""
        with Scope() as document:
            defer(lambda: out.append("document"))
            with render_unit(document) as unit:
                with chunk(unit):
                    defer(lambda: out.append("chunk"))
            assert out == ["chunk"]
            assert not document.is_closed
        assert out == ["chunk", "document"]


class TestBinder:
    """Tests for bind and merge."""

    def test_bind_is_idempotent(self, out):
        """Test that binding a registry twice installs one trampoline."""
        registry = HandlerRegistry()
        with Scope() as scope:
            assert binder.bind(scope, registry)
            assert not binder.bind(scope, registry)
            registry.register(lambda: out.append("a"))
            registry.register(lambda: out.append("b"))
            assert len(scope.exit_actions()) == 1
        assert out == ["b", "a"]

    def test_merge_places_by_priority(self, out):
        """Test that merge prepends first and appends last handlers."""
        with Scope() as scope:
            scope.on_exit(lambda: out.append("native"))
            binder.merge(scope, Handler(lambda: out.append("first")))
            binder.merge(scope, Handler(lambda: out.append("last"), "last"))
        assert out == ["first", "native", "last"]
