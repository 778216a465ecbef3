"""End-to-end tests: policy -> interceptor -> warden -> violation.

Watched functions are wrapped with a FunctionInterceptor; file writes are
fed to an AuditHookInterceptor through on_event(), the same call the
interpreter makes when the hook is installed.
"""

import types
from pathlib import Path

import pytest

from callwarden.enforcement import HALT_EXIT_CODE, FileViolation, FunctionViolation, ViolationKind
from callwarden.governance import ConfigurationError
from callwarden.interception import FunctionInterceptor
from callwarden.interception.audit import AuditHookInterceptor
from callwarden.operations import OPTION_SETTER, TrappedOperation
from callwarden.warden import Warden, configure

POLICY = {
    "functions": {
        "func1()": {"default": "block"},
        "ClassA.blocked_method()": {"default": "block"},
        "func2()": {
            "default": "block",
            "except": [{"scope": "ClassB.can_call_func2()"}],
        },
        "func3()": {
            "default": "block",
            "except": [{"file": "test_warden.py", "scope": "ClassC.can_call_func3()"}],
        },
    },
    "files": {
        "secret.file": {
            "default": "block",
            "except": [{"scope": "ClassE.can_write_to_file()"}],
        },
    },
}


def func1():
    return True


def func2():
    return True


def func3():
    return True


class ClassA:
    def __init__(self, api):
        self.api = api

    def cannot_call_func1(self):
        return self.api.func1()

    def cannot_call_func2(self):
        return self.api.func2()

    def blocked_method(self):
        return True


class ClassB:
    def __init__(self, api):
        self.api = api

    def can_call_func2(self):
        return self.api.func2()


class ClassC:
    def __init__(self, api):
        self.api = api

    def can_call_func3(self):
        return self.api.func3()

    def cannot_call_func3(self):
        return self.api.func3()


class ClassD:
    def __init__(self, api):
        self.api = api

    def cannot_write_to_file(self, path):
        self.api.interceptor.on_event("open", (str(path), "w", 0))
        path.write_text("D was here")
        return True


class ClassE(ClassD):
    def can_write_to_file(self, path):
        self.api.interceptor.on_event("open", (str(path), "w", 0))
        path.write_text("E was here")
        return True


@pytest.fixture
def api(fresh_configuration, halts, monkeypatch):
    interceptor = AuditHookInterceptor()
    warden = configure(POLICY, interceptor, halt_on_incident=False, halt=halts.append)
    monkeypatch.setattr(ClassA, "blocked_method", interceptor.intercept(ClassA.blocked_method))
    return types.SimpleNamespace(
        interceptor=interceptor,
        warden=warden,
        func1=interceptor.intercept(func1),
        func2=interceptor.intercept(func2),
        func3=interceptor.intercept(func3),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Function watchlist
# ═══════════════════════════════════════════════════════════════════════════════


class TestWatchedFunctions:
    def test_blocked_function(self, api):
        with pytest.raises(FunctionViolation, match="func1"):
            ClassA(api).cannot_call_func1()

    def test_blocked_function_from_test_body(self, api):
        with pytest.raises(FunctionViolation):
            api.func1()

    def test_blocked_class_method(self, api):
        with pytest.raises(FunctionViolation, match="ClassA.blocked_method"):
            ClassA(api).blocked_method()

    def test_function_blocked_outside_allowed_scope(self, api):
        with pytest.raises(FunctionViolation):
            ClassA(api).cannot_call_func2()

    def test_function_allowed_in_scope(self, api):
        assert ClassB(api).can_call_func2() is True

    def test_function_blocked_in_other_method(self, api):
        with pytest.raises(FunctionViolation):
            ClassC(api).cannot_call_func3()

    def test_function_allowed_in_scope_and_file(self, api):
        assert ClassC(api).can_call_func3() is True

    def test_violation_carries_operation(self, api):
        with pytest.raises(FunctionViolation) as excinfo:
            ClassA(api).cannot_call_func2()
        violation = excinfo.value
        assert violation.kind is ViolationKind.FUNCTION
        assert violation.subject == "func2()"
        assert violation.operation.scope.endswith("ClassA.cannot_call_func2()")
        assert isinstance(violation, PermissionError)


# ═══════════════════════════════════════════════════════════════════════════════
# File watchlist
# ═══════════════════════════════════════════════════════════════════════════════


class TestWatchedFiles:
    def test_write_blocked(self, api, tmp_path):
        target = tmp_path / "secret.file"
        with pytest.raises(FileViolation, match="secret.file was being written to by open()"):
            ClassD(api).cannot_write_to_file(target)
        assert not target.exists()

    def test_write_allowed(self, api, tmp_path):
        target = tmp_path / "secret.file"
        assert ClassE(api).can_write_to_file(target) is True
        assert target.read_text() == "E was here"

    def test_unwatched_file(self, api, tmp_path):
        assert ClassD(api).cannot_write_to_file(tmp_path / "public.file") is True

    def test_allowed_exception_file_is_protected(self, api):
        # func3's exception file must not be rewritable
        with pytest.raises(FileViolation, match="test_warden.py"):
            api.interceptor.on_event("os.rename", ("/tmp/evil.py", "/srv/tests/test_warden.py"))

    def test_engine_source_is_protected(self, api):
        import callwarden.warden as warden_module

        source = str(Path(warden_module.__file__).resolve())
        with pytest.raises(FileViolation):
            api.interceptor.on_event("open", (source, "a", 0))


# ═══════════════════════════════════════════════════════════════════════════════
# Tamper protection
# ═══════════════════════════════════════════════════════════════════════════════


class TestTamperProtection:
    def test_disabling_interception(self, api):
        with pytest.raises(FunctionViolation, match="set_option"):
            api.interceptor.set_option("intercept.enable", 0)
        assert api.interceptor.enabled

    def test_other_options_are_allowed(self, api):
        api.interceptor.set_option("log.level", "debug")
        assert api.interceptor.options["log.level"] == "debug"

    def test_registering_more_hooks(self, api):
        with pytest.raises(FunctionViolation, match="subscribe_before"):
            api.interceptor.subscribe_before("func1", lambda op: None)

    def test_registering_after_hooks(self, api):
        with pytest.raises(FunctionViolation, match="subscribe_after"):
            api.interceptor.subscribe_after("func1", lambda op: None)

    def test_redefining_watchlist(self, api):
        with pytest.raises(ConfigurationError):
            configure({"functions": {"func1()": {"default": "allow"}}})
        # First watchlist is still in force
        with pytest.raises(FunctionViolation):
            api.func1()


# ═══════════════════════════════════════════════════════════════════════════════
# Warden boundary
# ═══════════════════════════════════════════════════════════════════════════════


class TestWardenBoundary:
    def test_halts_when_configured(self, fresh_configuration, halts):
        warden = configure({"functions": {"func1": {"default": "block"}}}, halt=halts.append)
        assert warden.halt_on_incident

        with pytest.raises(FunctionViolation):
            warden.process(TrappedOperation.create("app.func1", scope="app.main"))
        assert halts == [HALT_EXIT_CODE]

    def test_no_halt_without_flag(self, api, halts):
        with pytest.raises(FunctionViolation):
            api.func1()
        assert halts == []

    def test_allowed_operation_returns(self, api):
        assert api.warden.process(TrappedOperation.create("app.unwatched")) is None

    def test_file_incident_reported_before_function_incident(self, fresh_configuration):
        warden = Warden(configure({
            "files": {"secret.file": {"default": "block"}},
            "functions": {"open": {"default": "block"}},
        }).table)
        incident = warden.evaluate(TrappedOperation.create("open", ("/data/secret.file", "r", 0)))
        assert incident.kind is ViolationKind.FILE
        assert incident.subject == "secret.file"

        incident = warden.evaluate(TrappedOperation.create("open", ("/data/other.file", "r", 0)))
        assert incident.kind is ViolationKind.FUNCTION
        assert incident.subject == "open()"

    def test_disable_attempt_is_an_incident_without_watchlist(self, fresh_configuration):
        warden = configure({})
        incident = warden.evaluate(TrappedOperation.create(OPTION_SETTER, ("intercept.enable", False)))
        assert incident.kind is ViolationKind.FUNCTION
        assert incident.subject == OPTION_SETTER

    def test_halt_flag_argument_overrides_policy(self, fresh_configuration):
        warden = configure({"haltOnIncident": True}, halt_on_incident=False)
        assert not warden.halt_on_incident

    @pytest.mark.parametrize("name", ["before", "subscribe", "Interceptor"])
    def test_registration_name_overlap_does_not_trip_configure(self, fresh_configuration, halts, name):
        interceptor = FunctionInterceptor()
        configure({"functions": {name: {"default": "block"}}}, interceptor, halt=halts.append)
        assert halts == []

        with pytest.raises(FunctionViolation, match="subscribe_before"):
            interceptor.subscribe_before("func1", lambda op: None)
        assert halts == [HALT_EXIT_CODE]
