"""
Unit tests for target discovery (dostic/discovery.py).

Covers database container matching, volume exclusion rules and folder specs.
"""

import logging

from dostic.config import ExclusionRuleSet
from dostic.discovery import MYSQL_PORT, POSTGRES_PORT, TargetDiscovery, parse_folder_specs
from dostic.targets import BackupTarget, TargetKind

ANONYMOUS = "f" * 64


class TestDatabaseDiscovery:
    """Test discovery of database containers by published port."""

    def test_matches_port_signature(self, make_config, make_runtime):
        runtime = make_runtime(
            containers=[
                ("pg-main", "0.0.0.0:5432->5432/tcp, :::5432->5432/tcp"),
                ("pg-internal", "5432/tcp"),
                ("mariadb", "3306/tcp"),
                ("web", "0.0.0.0:8080->80/tcp"),
                ("stopped", ""),
            ]
        )
        discovery = TargetDiscovery(make_config(), runtime)

        assert discovery.discover_database_containers(POSTGRES_PORT) == ["pg-main", "pg-internal"]
        assert discovery.discover_database_containers(MYSQL_PORT) == ["mariadb"]

    def test_port_prefix_is_not_a_match(self, make_config, make_runtime):
        runtime = make_runtime(containers=[("proxy", "0.0.0.0:15432->15432/tcp")])
        discovery = TargetDiscovery(make_config(), runtime)

        assert discovery.discover_database_containers(POSTGRES_PORT) == []

    def test_no_containers_is_not_an_error(self, make_config, fake_runtime):
        discovery = TargetDiscovery(make_config(), fake_runtime)

        assert discovery.targets_for(TargetKind.POSTGRES) == []

    def test_database_targets_use_staging_directory(self, make_config, make_runtime, tmp_path):
        runtime = make_runtime(containers=[("mydb", "5432/tcp")])
        discovery = TargetDiscovery(make_config(), runtime)

        targets = discovery.targets_for(TargetKind.POSTGRES)

        assert targets == [
            BackupTarget(
                kind=TargetKind.POSTGRES,
                identifier="mydb",
                source_path=str(tmp_path / "backups" / "postgres" / "mydb"),
            )
        ]
        assert targets[0].tag == "postgres/mydb"


class TestVolumeDiscovery:
    """Test named volume discovery and exclusion rules."""

    def test_anonymous_volumes_dropped(self, make_config, make_runtime):
        runtime = make_runtime(volumes=[ANONYMOUS, "appdata"])
        discovery = TargetDiscovery(make_config(), runtime)

        assert discovery.discover_volumes(ExclusionRuleSet()) == ["appdata"]

    def test_cache_volume_always_excluded(self, make_config, make_runtime):
        runtime = make_runtime(volumes=["restic-cache", "appdata"])
        discovery = TargetDiscovery(make_config(), runtime)

        assert discovery.discover_volumes(ExclusionRuleSet()) == ["appdata"]
        assert discovery.discover_volumes(ExclusionRuleSet(regex="^zzz")) == ["appdata"]

    def test_custom_cache_volume_name(self, make_config, make_runtime):
        runtime = make_runtime(volumes=["restic-cache", "my-cache"])
        config = make_config(repository={"cache_volume": "my-cache"})

        assert TargetDiscovery(config, runtime).discover_volumes(ExclusionRuleSet()) == ["restic-cache"]

    def test_exact_name_exclusion(self, make_config, make_runtime):
        runtime = make_runtime(volumes=["appdata", "scratch", "scratch-2"])
        discovery = TargetDiscovery(make_config(), runtime)

        volumes = discovery.discover_volumes(ExclusionRuleSet(exact_names="scratch"))

        assert volumes == ["appdata", "scratch-2"]

    def test_regex_exclusion(self, make_config, make_runtime):
        runtime = make_runtime(volumes=["tmp-a", "data-b"])
        config = make_config(exclusions={"regex": "^tmp-"})
        discovery = TargetDiscovery(config, runtime)

        targets = discovery.targets_for(TargetKind.VOLUME)

        assert [target.tag for target in targets] == ["volume/data-b"]
        assert targets[0].source_path == "data-b"

    def test_exclusion_is_logged(self, make_config, make_runtime, caplog):
        runtime = make_runtime(volumes=["tmp-a"])
        discovery = TargetDiscovery(make_config(), runtime)

        with caplog.at_level(logging.INFO, logger="dostic.discovery"):
            discovery.discover_volumes(ExclusionRuleSet(regex="^tmp-"))

        assert "reason=regex_match" in caplog.text


class TestParseFolderSpecs:
    """Test parsing of comma separated folder specs."""

    def test_path_with_tag(self, tmp_path):
        folder = tmp_path / "etc"
        folder.mkdir()

        assert parse_folder_specs(f"{folder}:sysconf") == [(folder, "sysconf")]

    def test_tag_defaults_to_basename(self, tmp_path):
        folder = tmp_path / "config"
        folder.mkdir()

        assert parse_folder_specs(str(folder)) == [(folder, "config")]

    def test_missing_path_dropped_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="dostic.discovery"):
            folders = parse_folder_specs("/nonexistent:x")

        assert folders == []
        assert "Folder does not exist" in caplog.text

    def test_empty_entries_skipped(self, tmp_path):
        first = tmp_path / "a"
        second = tmp_path / "b"
        first.mkdir()
        second.mkdir()

        folders = parse_folder_specs(f" ,{first}, ,, {second}:bee ,")

        assert folders == [(first, "a"), (second, "bee")]

    def test_relative_path_resolved_against_cwd(self, tmp_path):
        (tmp_path / "data").mkdir()

        assert parse_folder_specs("data", cwd=tmp_path) == [((tmp_path / "data").resolve(), "data")]

    def test_empty_string(self):
        assert parse_folder_specs("") == []

    def test_explicit_tag_collision_dropped(self, tmp_path):
        first = tmp_path / "one"
        second = tmp_path / "two"
        first.mkdir()
        second.mkdir()

        assert parse_folder_specs(f"{first}:app,{second}:app") == [(first, "app")]


class TestFolderTargets:
    """Test folder target construction from configuration."""

    def test_etc_with_tag(self, make_config, fake_runtime):
        config = make_config(folders="/etc:sysconf")

        targets = TargetDiscovery(config, fake_runtime).targets_for(TargetKind.FOLDER)

        assert len(targets) == 1
        assert targets[0].source_path == "/etc"
        assert targets[0].tag == "folders/sysconf"

    def test_unset_folders_yield_nothing(self, make_config, fake_runtime, caplog):
        with caplog.at_level(logging.WARNING, logger="dostic.discovery"):
            targets = TargetDiscovery(make_config(), fake_runtime).targets_for(TargetKind.FOLDER)

        assert targets == []
        assert "BACKUP_FOLDERS not set" in caplog.text

    def test_duplicate_tags_keep_first_entry(self, make_config, fake_runtime, tmp_path, caplog):
        first = tmp_path / "a" / "data"
        second = tmp_path / "b" / "data"
        first.mkdir(parents=True)
        second.mkdir(parents=True)
        config = make_config(folders=f"{first},{second}")

        with caplog.at_level(logging.WARNING, logger="dostic.discovery"):
            targets = TargetDiscovery(config, fake_runtime).targets_for(TargetKind.FOLDER)

        assert [target.tag for target in targets] == ["folders/data"]
        assert targets[0].source_path == str(first)
        assert "Duplicate folder tag" in caplog.text
        assert str(first) in caplog.text
        assert str(second) in caplog.text
