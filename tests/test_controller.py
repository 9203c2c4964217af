"""Tests for the incremental update controller and snapshot publication."""

import dataclasses
import time

import pytest

from ruletrace.engine.controller import UpdateController
from ruletrace.engine.core.rule_id import RuleId
from ruletrace.exceptions import ConfigReloadError, SourceFetchError, StartupError
from ruletrace.models.enums import ControllerState, Verb

from tests.conftest import CONFIG_PATH, CONFIG_TOML, LIB_RS, SPEC_MD, TESTS_RS, write_files

VALIDATION = RuleId("auth.token.validation")
WAIT_S = 5.0


def rust_view(controller):
    return controller.snapshot.impl_view("app", "rust")


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


class TestStartup:
    """First snapshot publication."""

    def test_initial_snapshot(self, controller):
        snapshot = controller.snapshot
        assert snapshot.version == 1
        assert snapshot.pairs() == [("app", "rust")]
        assert controller.state is ControllerState.IDLE

        view = rust_view(controller)
        assert (view.summary.total, view.summary.covered, view.summary.verified) == (3, 1, 0)
        (ref,) = view.forward.references(VALIDATION, Verb.IMPL)
        assert (ref.file, ref.line) == ("src/lib.rs", 10)
        lib = view.reverse.files["src/lib.rs"]
        assert (lib.total_units, lib.covered_units) == (4, 1)
        assert view.validation.is_valid
        assert len(view.validation.orphaned) == 2

    def test_missing_root(self, tmp_path):
        with pytest.raises(StartupError):
            UpdateController(tmp_path / "missing", watch=False)

    def test_missing_config_is_empty(self, tmp_path, make_controller):
        ctl = make_controller(tmp_path)
        assert ctl.snapshot.pairs() == []
        assert ctl.config_error is None

    def test_malformed_config_starts_empty(self, project, make_controller):
        write_files(project, {CONFIG_PATH: "[[specs]\nname ="})
        ctl = make_controller(project)
        assert ctl.snapshot.version == 1
        assert ctl.snapshot.pairs() == []
        assert "has errors" in ctl.snapshot.config_error
        assert ctl.status()["config_error"] == ctl.config_error

    def test_context_manager(self, project):
        with UpdateController(project, watch=False, debounce_ms=10) as ctl:
            assert ctl.snapshot.version == 1
        assert ctl.state is ControllerState.STOPPED


# ---------------------------------------------------------------------------
# Incremental rebuilds
# ---------------------------------------------------------------------------


class TestRebuild:
    """Change notification, debouncing and version bumps."""

    def test_no_change_keeps_version(self, controller):
        before = controller.snapshot
        assert controller.rebuild_now() is before
        assert controller.rebuild_now(["src/lib.rs"]).version == 1

    def test_new_file_is_picked_up(self, project, controller):
        write_files(project, {"src/tests.rs": TESTS_RS})
        controller.notify_changed([project / "src" / "tests.rs"])
        assert controller.wait_for_version(2, timeout=WAIT_S)
        view = rust_view(controller)
        assert view.forward.is_verified(VALIDATION)
        assert view.summary.verified == 1

    def test_changes_are_coalesced(self, project, make_controller):
        ctl = make_controller(project, debounce_ms=300)
        write_files(project, {"src/a.rs": "// [impl auth.token.expiry]\nfn a() {}\n"})
        ctl.notify_changed(["src/a.rs"])
        write_files(project, {"src/b.rs": "// [impl auth.session.create]\nfn b() {}\n"})
        ctl.notify_changed(["src/b.rs"])
        assert ctl.state is ControllerState.DEBOUNCING
        assert ctl.wait_idle(timeout=WAIT_S)
        assert ctl.snapshot.version == 2
        assert ctl.snapshot.impl_view("app", "rust").summary.covered == 3

    def test_deleted_file(self, project, controller):
        (project / "src" / "lib.rs").unlink()
        snapshot = controller.rebuild_now(["src/lib.rs"])
        assert snapshot.version == 2
        view = rust_view(controller)
        assert "src/lib.rs" not in view.reverse.files
        assert view.summary.covered == 0

    def test_spec_edit(self, project, controller):
        write_files(project, {"docs/auth.md": SPEC_MD + "\nr[auth.session.end]\nSessions MAY end.\n"})
        controller.rebuild_now(["docs/auth.md"])
        assert rust_view(controller).summary.total == 4

    def test_paths_outside_root_are_ignored(self, tmp_path, controller):
        controller.notify_changed([tmp_path.parent / "elsewhere.rs", ".git/HEAD"])
        assert controller.state is ControllerState.IDLE
        assert controller.wait_idle(timeout=WAIT_S)
        assert controller.snapshot.version == 1

    def test_ignored_files_are_not_indexed(self, project, make_controller):
        write_files(
            project,
            {".gitignore": "src/generated/\n", "src/generated/x.rs": "// [impl auth.token.expiry]\n"},
        )
        ctl = make_controller(project)
        assert "src/generated/x.rs" not in ctl.snapshot.impl_view("app", "rust").files

    def test_old_snapshot_is_unchanged(self, project, controller):
        old = controller.snapshot
        write_files(project, {"src/lib.rs": "pub fn gone() {}\n"})
        new = controller.rebuild_now(["src/lib.rs"])
        assert new.version == 2
        assert new.impl_view("app", "rust").summary.covered == 0
        assert old.version == 1
        assert old.impl_view("app", "rust").summary.covered == 1
        assert old.impl_view("app", "rust").forward.references(VALIDATION)
        with pytest.raises(TypeError):
            old.impls[("app", "other")] = None
        with pytest.raises(dataclasses.FrozenInstanceError):
            old.version = 7


class TestOverlay:
    """Unsaved editor buffers."""

    def test_open_and_close(self, controller):
        controller.overlay_open("src/lib.rs", "pub fn edited() {}\n")
        assert controller.wait_for_version(2, timeout=WAIT_S)
        assert rust_view(controller).summary.covered == 0

        controller.overlay_close("src/lib.rs")
        assert controller.wait_for_version(3, timeout=WAIT_S)
        assert rust_view(controller).summary.covered == 1

    def test_buffer_for_unsaved_new_file(self, controller):
        controller.overlay_change("src/draft.rs", "// [verify auth.token.validation]\nfn t() {}\n")
        assert controller.wait_for_version(2, timeout=WAIT_S)
        assert "src/draft.rs" in rust_view(controller).files

    def test_closing_unknown_buffer_is_a_no_op(self, controller):
        controller.overlay_close("src/lib.rs")
        assert controller.wait_idle(timeout=WAIT_S)
        assert controller.snapshot.version == 1


# ---------------------------------------------------------------------------
# Configuration reloads
# ---------------------------------------------------------------------------


class TestReload:
    """Config changes rebuild everything or leave the old snapshot live."""

    def test_bad_config_keeps_snapshot(self, project, controller):
        write_files(project, {CONFIG_PATH: "[[specs]\n"})
        with pytest.raises(ConfigReloadError):
            controller.reload()
        assert controller.snapshot.version == 1
        assert controller.snapshot.pairs() == [("app", "rust")]
        assert controller.config_error is not None

        write_files(project, {CONFIG_PATH: CONFIG_TOML})
        controller.reload()
        assert controller.config_error is None
        assert controller.snapshot.version == 1

    def test_bad_config_from_watcher_keeps_snapshot(self, project, controller):
        write_files(project, {CONFIG_PATH: "[[specs]\n"})
        controller.notify_changed([CONFIG_PATH])
        assert controller.wait_idle(timeout=WAIT_S)
        assert controller.snapshot.version == 1
        assert controller.config_error is not None

    def test_config_change_adds_impl(self, project, controller):
        write_files(
            project,
            {
                CONFIG_PATH: CONFIG_TOML
                + '\n[[specs.impls]]\nlang = "python"\ninclude = ["py/**/*.py"]\n',
                "py/app.py": "# [impl auth.session.create]\ndef create():\n    pass\n",
            },
        )
        snapshot = controller.reload()
        assert snapshot.version == 2
        assert snapshot.pairs() == [("app", "rust"), ("app", "python")]
        assert snapshot.impl_view("app", "python").summary.covered == 1


class TestSpecSources:
    """rules_file and rules_url specs."""

    def test_missing_rules_file(self, tmp_path, make_controller):
        write_files(
            tmp_path,
            {CONFIG_PATH: '[[specs]]\nname = "s"\nrules_file = "SPEC.md"\n\n[[specs.impls]]\nlang = "rust"\n'},
        )
        ctl = make_controller(tmp_path)
        assert ctl.snapshot.spec_view("s").fetch_error == "Spec file SPEC.md not found"
        assert ctl.snapshot.impl_view("s", "rust").validation.error_count == 1

    def test_remote_spec(self, project, make_controller):
        urls = []

        def fetcher(url):
            urls.append(url)
            return SPEC_MD

        write_files(
            project,
            {
                CONFIG_PATH: '[[specs]]\nname = "remote"\nrules_url = "https://example.com/spec.md"\n\n'
                '[[specs.impls]]\nlang = "rust"\ninclude = ["src/**/*.rs"]\n'
            },
        )
        ctl = make_controller(project, fetcher=fetcher)
        assert len(ctl.snapshot.spec_view("remote").manifest) == 3
        assert ctl.snapshot.impl_view("remote", "rust").summary.covered == 1

        ctl.rebuild_now(["src/lib.rs"])
        assert urls == ["https://example.com/spec.md"]

    def test_remote_spec_failure(self, project, make_controller):
        def fetcher(url):
            raise SourceFetchError(f"Fetching {url} returned HTTP 500")

        write_files(
            project,
            {CONFIG_PATH: '[[specs]]\nname = "remote"\nrules_url = "https://example.com/spec.md"\n'},
        )
        ctl = make_controller(project, fetcher=fetcher)
        assert "HTTP 500" in ctl.snapshot.spec_view("remote").fetch_error
        assert len(ctl.snapshot.spec_view("remote").manifest) == 0



# ---------------------------------------------------------------------------
# Coverage arithmetic across versions
# ---------------------------------------------------------------------------


class TestCoverageGrowth:
    """Adding references never lowers coverage."""

    def test_coverage_only_grows_as_references_are_added(self, project, controller):
        additions = [
            ("src/deps.rs", "// [depends auth.token.expiry]\nfn d() {}\n"),
            ("src/again.rs", "// [impl auth.token.validation]\nfn again() {}\n"),
            ("src/expiry.rs", "// [impl auth.token.expiry]\nfn e() {}\n"),
            ("src/tests.rs", TESTS_RS),
            ("src/session.rs", "// [impl auth.session.create]\nfn s() {}\n"),
            ("src/unknown.rs", "// [impl auth.no.such]\nfn u() {}\n"),
        ]
        summary = rust_view(controller).summary
        seen = [(summary.covered, summary.covered_percent, summary.verified)]
        for rel, content in additions:
            write_files(project, {rel: content})
            controller.rebuild_now([rel])
            summary = rust_view(controller).summary
            assert summary.covered <= summary.total
            assert 0.0 <= summary.covered_percent <= 100.0
            seen.append((summary.covered, summary.covered_percent, summary.verified))

        for before, after in zip(seen, seen[1:]):
            assert after[0] >= before[0]
            assert after[1] >= before[1]
            assert after[2] >= before[2]
        assert seen[-1] == (3, 100.0, 1)


# ---------------------------------------------------------------------------
# Filesystem watcher
# ---------------------------------------------------------------------------


def edit_until_rebuilt(controller, root, rel, content) -> bool:
    """Write ``rel`` until the watcher picks it up; the observer starts asynchronously."""
    target = controller.snapshot.version + 1
    deadline = time.monotonic() + WAIT_S
    while time.monotonic() < deadline:
        write_files(root, {rel: content})
        if controller.wait_for_version(target, timeout=0.25):
            return True
    return False


def wait_until(predicate, timeout=WAIT_S) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


class TestWatcher:
    """Rebuilds driven by watchdog events."""

    def test_edit_is_picked_up(self, project, make_controller):
        ctl = make_controller(project, watch=True)
        assert edit_until_rebuilt(ctl, project, "src/tests.rs", TESTS_RS)
        assert rust_view(ctl).forward.is_verified(VALIDATION)
        assert ctl.watch_errors == []

    def test_moved_root_is_recorded_and_recovered(self, tmp_path, make_controller):
        root = tmp_path / "project"
        write_files(root, {CONFIG_PATH: CONFIG_TOML, "docs/auth.md": SPEC_MD, "src/lib.rs": LIB_RS})
        ctl = make_controller(
            root, watch=True, watch_retry_initial_s=0.05, watch_retry_max_s=0.2
        )
        assert edit_until_rebuilt(ctl, root, "src/tests.rs", TESTS_RS)
        assert ctl.wait_idle(timeout=WAIT_S)
        version = ctl.snapshot.version

        moved = tmp_path / "moved"
        root.rename(moved)
        try:
            assert wait_until(lambda: len(ctl.watch_errors) > 0)
            assert ctl.state is not ControllerState.STOPPED
            assert ctl.snapshot.version == version
            assert rust_view(ctl).summary.verified == 1
            assert ctl.status()["watch_errors"]
        finally:
            moved.rename(root)

        assert edit_until_rebuilt(
            ctl, root, "src/expiry.rs", "// [impl auth.token.expiry]\nfn e() {}\n"
        )
        assert rust_view(ctl).summary.covered == 2
