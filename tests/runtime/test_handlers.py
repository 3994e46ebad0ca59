import pytest

from deferral.runtime.errors import InvalidActionError, InvalidPriorityError
from deferral.runtime.handlers import Handler, HandlerRegistry, Priority, run_handlers


class TestPriority:
    """Tests for Priority coercion."""

    def test_accepts_tokens(self):
        """Test that both tokens and enum members are accepted."""
        assert Priority.coerce("first") is Priority.FIRST
        assert Priority.coerce("LAST") is Priority.LAST
        assert Priority.coerce(Priority.LAST) is Priority.LAST

    @pytest.mark.parametrize("value", ["middle", "", None, 1])
    def test_rejects_unknown(self, value):
        """Test that anything but first/last raises InvalidPriorityError."""
        with pytest.raises(InvalidPriorityError, match="priority must be 'first' or 'last'"):
            Priority.coerce(value)

    def test_invalid_priority_is_value_error(self):
        """Test that callers catching ValueError see bad priorities."""
        with pytest.raises(ValueError):
            Handler(lambda: None, "sometimes")


class TestHandler:
    """Tests for Handler."""

    def test_requires_callable(self):
        """Test that non-callables are rejected at construction."""
        with pytest.raises(InvalidActionError, match="must be callable"):
            Handler("not callable")  # type: ignore[arg-type]

    def test_call_runs_action(self):
        """Test that calling a handler runs its action."""
        handler = Handler(lambda: 42)
        assert handler() == 42


class TestHandlerRegistry:
    """Tests for HandlerRegistry ordering."""

    def test_first_handlers_run_newest_first(self, out):
        """Test that first-priority handlers behave like a stack."""
        registry = HandlerRegistry()
        for i in range(3):
            registry.register(lambda i=i: out.append(i))

        for handler in registry.drain():
            handler()

        assert out == [2, 1, 0]

    def test_last_handlers_run_oldest_first_after_first_group(self, out):
        """Test that last-priority handlers form a queue behind the first group."""
        registry = HandlerRegistry()
        registry.register(lambda: out.append("last-a"), "last")
        registry.register(lambda: out.append("first-a"))
        registry.register(lambda: out.append("last-b"), "last")
        registry.register(lambda: out.append("first-b"))

        for handler in registry.snapshot():
            handler()

        assert out == ["first-b", "first-a", "last-a", "last-b"]

    def test_priority_argument_overrides_handler(self):
        """Test that an explicit priority wins over the handler's own."""
        registry = HandlerRegistry()
        handler = registry.register(Handler(lambda: None, Priority.FIRST), "last")
        assert handler.priority is Priority.LAST

    def test_drain_empties_registry(self):
        """Test that drain returns everything and leaves nothing behind."""
        registry = HandlerRegistry()
        registry.register(lambda: None)
        registry.register(lambda: None, "last")

        assert len(registry) == 2
        assert len(registry.drain()) == 2
        assert not registry
        assert registry.drain() == ()

    def test_clear_drops_handlers(self, out):
        """Test that clear discards without running."""
        registry = HandlerRegistry()
        registry.register(lambda: out.append("never"))
        registry.clear()

        assert len(registry) == 0
        assert out == []


class TestRunHandlers:
    """Tests for run_handlers."""

    def test_runs_all_despite_errors(self, out):
        """Test that a failing action does not stop the rest."""

        def boom():
            raise RuntimeError("hi")

        report = run_handlers([lambda: out.append(1), boom, lambda: out.append(3)])

        assert out == [1, 3]
        assert report.total == 3
        assert report.completed == 2
        assert not report.ok
        with pytest.raises(RuntimeError, match="hi"):
            report.raise_first()

    def test_failures_are_logged(self, caplog):
        """Test that each failure is logged as a warning."""

        def boom():
            raise ValueError("bad")

        with caplog.at_level("WARNING", logger="deferral"):
            run_handlers([boom], label="cleanup")

        assert "cleanup 1/1 failed" in caplog.text

    def test_raise_first_keeps_first_error(self):
        """Test that the first of several failures is re-raised."""

        def first():
            raise KeyError("first")

        def second():
            raise ValueError("second")

        report = run_handlers([first, second])

        assert len(report.errors) == 2
        with pytest.raises(KeyError):
            report.raise_first()
