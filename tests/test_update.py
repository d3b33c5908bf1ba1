"""
Tests for UpdateService: ref resolution, tag selection and lock rewriting.
"""

from unittest.mock import MagicMock

import pytest
import yaml

from conftest import LIB_A_URL, LIB_B_URL, write_vendor_yml

from gitvendor.domain.operation import UpdateStatus
from gitvendor.domain.vendor import LockDetails, VendorLock
from gitvendor.infra.yaml_store import StateStore
from gitvendor.services.update_service import UpdateOptions, UpdateService, select_tag


def drain(generator):
    while True:
        try:
            next(generator)
        except StopIteration as stop:
            return stop.value


@pytest.fixture
def license_client():
    client = MagicMock()
    client.detect.return_value = "Apache-2.0"
    return client


@pytest.fixture
def service(project, settings, git, license_client):
    return UpdateService(project, config=settings, git_client=git,
                         license_client=license_client, state_store=StateStore(project))


def bump(remote, count=1, start=2):
    hashes = []
    for n in range(start, start + count):
        hashes.append(remote.commit({'src/a/core.py': f"A = {n}\n", 'util.py': f"B = {n}\n"},
                                    subject=f"change {n}"))
    return hashes


class TestSelectTag:
    """Tests for representative tag selection."""

    def test_semver_preferred(self):
        assert select_tag(["release-2025", "v1.2.3"]) == "v1.2.3"

    def test_first_listed_without_semver(self):
        assert select_tag(["release-2025", "beta"]) == "release-2025"

    def test_no_tags(self):
        assert select_tag([]) == ""

    @pytest.mark.parametrize("tag", ["1.0.0", "v2.0.0-rc.1", "v1.0.0+build.5", "v10.20.30"])
    def test_semver_forms(self, tag):
        assert select_tag(["nightly", tag]) == tag

    @pytest.mark.parametrize("tag", ["v1.2", "v01.2.3", "version-1.2.3"])
    def test_not_semver(self, tag):
        assert select_tag(["nightly", tag]) == "nightly"


class TestCheck:
    """Tests for check-updates."""

    def test_all_current(self, service, project, vendor_config, lock):
        summary = drain(service.check(vendor_config, lock, UpdateOptions()))
        assert summary.all_current
        assert [d.status for d in summary.details] == [UpdateStatus.UP_TO_DATE] * 2
        assert not (project / ".git-vendor" / "vendor.lock").exists()

    def test_update_available_with_commits(self, service, vendor_config, lock, remotes):
        old = lock.find('lib-a', 'main').commit_hash
        new_hashes = bump(remotes[LIB_A_URL], count=3)
        remotes[LIB_A_URL].tag('release-2025', new_hashes[-1])
        remotes[LIB_A_URL].tag('v1.2.3', new_hashes[-1])

        summary = drain(service.check(vendor_config, lock, UpdateOptions()))
        detail = summary.details[0]

        assert detail.status == UpdateStatus.UPDATE_AVAILABLE
        assert detail.current_hash == old
        assert detail.latest_hash == new_hashes[-1]
        assert [c.hash for c in detail.commits] == list(reversed(new_hashes))
        assert detail.tag == "v1.2.3"
        assert summary.outdated == 1
        assert not summary.all_current

    def test_commit_list_is_capped(self, service, vendor_config, lock, remotes):
        bump(remotes[LIB_A_URL], count=5)
        summary = drain(service.check(vendor_config, lock, UpdateOptions(max_commits=2)))
        assert len(summary.details[0].commits) == 2

    def test_up_to_date_skips_tag_lookup(self, service, git, vendor_config, lock):
        drain(service.check(vendor_config, lock, UpdateOptions()))
        assert git.count('tags_at') == 0
        assert git.count('commit_log') == 0

    def test_unlocked_ref_is_new(self, service, vendor_config, lock):
        lock.vendors = lock.vendors[:1]
        summary = drain(service.check(vendor_config, lock, UpdateOptions()))
        assert summary.details[1].status == UpdateStatus.NEW
        assert summary.details[1].commits == []

    def test_force_push_is_reported_as_diverged(self, service, vendor_config, lock, remotes):
        remotes[LIB_A_URL].force_push({'src/a/core.py': "rewritten\n"})
        summary = drain(service.check(vendor_config, lock, UpdateOptions()))
        detail = summary.details[0]
        assert detail.status == UpdateStatus.UPDATE_AVAILABLE
        assert detail.commits == []
        assert detail.diverged is True

    def test_unreachable_remote_is_an_error(self, service, git, vendor_config, lock):
        git.fail_urls.add(LIB_B_URL)
        summary = drain(service.check(vendor_config, lock, UpdateOptions()))
        assert summary.details[0].status == UpdateStatus.UP_TO_DATE
        assert summary.details[1].status == UpdateStatus.ERROR
        assert "not found" in summary.details[1].error
        assert summary.failed == 1
        assert not summary.all_current

    def test_vendor_filter(self, service, vendor_config, lock):
        summary = drain(service.check(vendor_config, lock, UpdateOptions(vendor='lib-b')))
        assert [d.vendor for d in summary.details] == ['lib-b']

    def test_diff_uses_same_resolution(self, service, vendor_config, lock, remotes):
        bump(remotes[LIB_A_URL])
        summary = drain(service.diff(vendor_config, lock, UpdateOptions()))
        assert summary.operation == "diff"
        assert summary.details[0].status == UpdateStatus.UPDATE_AVAILABLE
        assert len(summary.details[0].commits) == 1


class TestUpdate:
    """Tests for update rewriting vendor.lock."""

    def test_writes_new_lock(self, service, project, vendor_config, lock, remotes, license_client):
        new_hash = bump(remotes[LIB_A_URL])[-1]
        remotes[LIB_A_URL].tag('v2.0.0', new_hash)

        summary = drain(service.update(vendor_config, lock, UpdateOptions()))

        assert summary.lock_saved
        saved = StateStore(project).load_lock()
        entry = saved.find('lib-a', 'main')
        assert entry.commit_hash == new_hash
        assert entry.source_version_tag == 'v2.0.0'
        assert entry.license_spdx == 'Apache-2.0'
        assert entry.license_path == '.git-vendor/licenses/lib-a.txt'
        assert entry.updated.endswith('Z') and entry.updated != '2025-01-01T00:00:00Z'
        assert saved.find('lib-b', 'main') == lock.find('lib-b', 'main')
        license_client.detect.assert_called_once_with(LIB_A_URL)

    def test_lock_order_preserved_and_new_refs_appended(self, service, project, remotes):
        write_vendor_yml(project, [
            {'name': 'lib-b', 'url': LIB_B_URL,
             'specs': [{'ref': 'main', 'mapping': [{'from': 'util.py', 'to': 'vendor/b.py'}]}]},
            {'name': 'lib-a', 'url': LIB_A_URL,
             'specs': [{'ref': 'main', 'mapping': [{'from': 'src/a', 'to': 'vendor/a'}]}]},
        ])
        lock = VendorLock(vendors=[
            LockDetails(name='gone', ref='main', commit_hash='9' * 40),
            LockDetails(name='lib-a', ref='main', commit_hash='0' * 40),
        ])
        summary = drain(service.update(StateStore(project).load_config(), lock, UpdateOptions()))

        names = [entry.name for entry in summary.lock.vendors]
        assert names == ['lib-a', 'lib-b']
        data = yaml.safe_load((project / ".git-vendor" / "vendor.lock").read_text())
        assert [v['name'] for v in data['vendors']] == ['lib-a', 'lib-b']

    def test_vendors_outside_filter_carried_over(self, service, vendor_config, lock, remotes):
        bump(remotes[LIB_A_URL])
        original_b = lock.find('lib-b', 'main')
        summary = drain(service.update(vendor_config, lock, UpdateOptions(vendor='lib-a')))
        assert [d.vendor for d in summary.details] == ['lib-a']
        assert summary.lock.find('lib-b', 'main') is original_b
        assert summary.lock.find('lib-a', 'main').commit_hash == remotes[LIB_A_URL].tip()

    def test_failed_ref_keeps_entry(self, service, git, vendor_config, lock, remotes):
        bump(remotes[LIB_A_URL])
        git.fail_urls.add(LIB_A_URL)
        original = lock.find('lib-a', 'main')
        summary = drain(service.update(vendor_config, lock, UpdateOptions()))
        assert summary.failed == 1
        assert summary.lock.find('lib-a', 'main') is original

    def test_dry_run_writes_nothing(self, service, project, vendor_config, lock, remotes,
                                    license_client):
        bump(remotes[LIB_A_URL])
        summary = drain(service.update(vendor_config, lock, UpdateOptions(dry_run=True)))
        assert summary.outdated == 1
        assert summary.lock.find('lib-a', 'main').commit_hash == remotes[LIB_A_URL].tip()
        assert summary.lock_saved is False
        assert not (project / ".git-vendor" / "vendor.lock").exists()
        license_client.detect.assert_not_called()

    def test_license_falls_back_to_configured(self, service, vendor_config, lock, remotes,
                                              license_client):
        license_client.detect.return_value = None
        bump(remotes[LIB_A_URL])
        summary = drain(service.update(vendor_config, lock, UpdateOptions()))
        assert summary.lock.find('lib-a', 'main').license_spdx == 'MIT'

    def test_license_check_disabled(self, service, vendor_config, lock, remotes, license_client):
        bump(remotes[LIB_A_URL])
        drain(service.update(vendor_config, lock, UpdateOptions(detect_license=False)))
        license_client.detect.assert_not_called()

    def test_nothing_changed_does_not_rewrite(self, service, project, vendor_config, lock):
        summary = drain(service.update(vendor_config, lock, UpdateOptions()))
        assert summary.lock_saved is False
        assert not (project / ".git-vendor" / "vendor.lock").exists()

    def test_moved_entry_drops_file_hashes(self, service, vendor_config, lock, remotes):
        lock.find('lib-a', 'main').file_hashes = {'vendor/a/core.py': 'deadbeef'}
        lock.find('lib-b', 'main').file_hashes = {'vendor/b/util.py': 'cafe'}
        bump(remotes[LIB_A_URL])

        summary = drain(service.update(vendor_config, lock, UpdateOptions()))

        assert summary.lock.find('lib-a', 'main').file_hashes == {}
        assert summary.lock.find('lib-b', 'main').file_hashes == {'vendor/b/util.py': 'cafe'}
