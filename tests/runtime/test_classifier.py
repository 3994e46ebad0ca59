import pytest

from deferral.runtime.boundary import batch_unit, chunk, render_unit
from deferral.runtime.classifier import Regime, classify, validate_scope
from deferral.runtime.errors import InvalidScopeError
from deferral.runtime.scope import GLOBAL_SCOPE, Scope


class TestClassify:
    """Tests for the registration regime of a target scope."""

    def test_top_level_is_session(self):
        """Test that the bare global scope is the session regime."""
        assert classify(GLOBAL_SCOPE).regime is Regime.SESSION

    def test_global_activation_is_ordinary(self):
        """Test that an open activation unwinds like a frame."""
        with GLOBAL_SCOPE:
            assert classify(GLOBAL_SCOPE).regime is Regime.ORDINARY

    def test_plain_scope_is_ordinary(self):
        """Test that a normal scope keeps its own handlers."""
        with Scope() as scope:
            result = classify(scope)
        assert result.regime is Regime.ORDINARY
        assert result.target is scope
        assert result.unit is None

    def test_batch_on_global_scope_always_redirects(self):
        """Test that a script on the top-level scope is detected without opt-in."""
        with batch_unit(GLOBAL_SCOPE, name="script.py") as unit:
            result = classify(GLOBAL_SCOPE)
        assert result.regime is Regime.BATCH
        assert result.target is unit.scope
        assert result.unit is unit

    def test_batch_on_local_scope_needs_opt_in(self, monkeypatch):
        """Test that local batch detection is gated by DEFERRAL_HOOK_SOURCE."""
        with Scope() as scope:
            with batch_unit(scope):
                assert classify(scope).regime is Regime.ORDINARY
                monkeypatch.setenv("DEFERRAL_HOOK_SOURCE", "1")
                assert classify(scope).regime is Regime.BATCH

    def test_batch_does_not_capture_other_scopes(self, hook_source):
        """Test that only the scope the script evaluates in is redirected."""
        with Scope() as scope:
            with batch_unit(scope):
                with Scope() as inner:
                    assert classify(inner).regime is Regime.ORDINARY

    def test_render_wins(self):
        """Test that a document scope is classified as render."""
        with render_unit() as unit:
            with chunk(unit) as document:
                result = classify(document)
        assert result.regime is Regime.RENDER
        assert result.target is unit.scope

    def test_render_before_batch(self, hook_source):
        """Test that a render unit inside a batch unit takes precedence."""
        with Scope() as scope:
            with batch_unit(scope):
                with render_unit(scope) as unit:
                    assert classify(scope).unit is unit

    def test_render_can_be_disabled(self, monkeypatch):
        """Test that DEFERRAL_HOOK_RENDER=0 leaves chunk handlers on the document."""
        monkeypatch.setenv("DEFERRAL_HOOK_RENDER", "0")
        with render_unit() as unit:
            result = classify(unit.document)
        assert result.regime is Regime.ORDINARY
        assert result.target is unit.document


class TestValidateScope:
    """Tests for validate_scope."""

    def test_rejects_non_scope(self):
        with pytest.raises(InvalidScopeError):
            validate_scope(object())

    def test_rejects_closed_scope(self):
        with Scope() as scope:
            pass
        with pytest.raises(InvalidScopeError):
            classify(scope)

    def test_invalid_scope_is_type_error(self):
        """Test that callers catching TypeError see bad targets."""
        with pytest.raises(TypeError):
            validate_scope(None)
