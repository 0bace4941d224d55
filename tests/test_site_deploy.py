import threading
import time
from unittest import mock

import pytest
from botocore.exceptions import ClientError

from s3sitedeploy import (
    ConfigurationError,
    DeploymentGroup,
    OutcomeStatus,
    SiteDeployer,
    TransferError,
    plan_deployment,
)


def _client_error(operation):
    return ClientError({"Error": {"Code": "500", "Message": "boom"}}, operation)


@pytest.fixture
def s3_client():
    client = mock.MagicMock()
    client.get_paginator.return_value.paginate.return_value = []
    return client


@pytest.fixture
def deployer(s3_client):
    return SiteDeployer(bucket_name="unit-test-bucket", s3_client=s3_client, max_workers=4)


@pytest.fixture
def site(tmp_path):
    root = tmp_path / "dist"
    (root / "assets").mkdir(parents=True)
    (root / "index.html").write_text("<html></html>")
    (root / "app.js").write_text("console.log(1)")
    (root / "assets" / "logo.png").write_bytes(b"\x89PNG")
    return root


def _uploads(s3_client):
    """Map uploaded key -> ExtraArgs, keeping the last upload of each key."""
    uploads = {}
    for c in s3_client.upload_file.call_args_list:
        _, bucket, key = c.args
        assert bucket == "unit-test-bucket"
        uploads[key] = c.kwargs["ExtraArgs"]
    return uploads


def _set_bucket_contents(s3_client, keys):
    s3_client.get_paginator.return_value.paginate.return_value = [
        {"Contents": [{"Key": k} for k in keys]},
    ]


def test_collect_source_files(deployer, site):
    assert deployer.collect_source_files(site) == ["app.js", "assets/logo.png", "index.html"]


def test_collect_source_files_missing_root(deployer, tmp_path):
    with pytest.raises(ConfigurationError):
        deployer.collect_source_files(tmp_path / "missing")


def test_head_bucket_checked_on_init(s3_client):
    SiteDeployer(bucket_name="unit-test-bucket", s3_client=s3_client)
    s3_client.head_bucket.assert_called_once_with(Bucket="unit-test-bucket")


def test_unreachable_bucket_raises(s3_client):
    s3_client.head_bucket.side_effect = _client_error("HeadBucket")
    with pytest.raises(ClientError):
        SiteDeployer(bucket_name="unit-test-bucket", s3_client=s3_client)


def test_root_ca_path(tmp_path):
    ca_path = "/tmp/ca.pem"
    with mock.patch("boto3.Session.client") as mocked_client:
        mocked_client.return_value = mock.MagicMock()
        _ = SiteDeployer(
            bucket_name="bucket",
            s3_endpoint="https://ep",
            aws_access_key_id="k",
            aws_secret_access_key="s",
            root_ca_path=ca_path,
        )
        mocked_client.assert_called_once()
        _, kwargs = mocked_client.call_args
        assert kwargs["verify"] == ca_path
        assert kwargs["endpoint_url"] == "https://ep"


def test_deploy_applies_cache_control_per_group(deployer, s3_client, site):
    report = deployer.deploy_site(site, {"*.js": "public, max-age=31536000"})

    assert report.ok
    assert report.processed == 3
    assert _uploads(s3_client) == {
        "index.html": {"CacheControl": "public, no-cache", "ContentType": "text/html;charset=utf-8"},
        "app.js": {"CacheControl": "public, max-age=31536000"},
        "assets/logo.png": {"CacheControl": "public, no-cache"},
    }
    s3_client.delete_object.assert_not_called()


def test_each_file_uploaded_once_for_disjoint_groups(deployer, s3_client, site):
    deployer.deploy_site(site, {"*.js": "a", "assets/*": "b"})

    keys = [c.args[2] for c in s3_client.upload_file.call_args_list]
    assert sorted(keys) == ["app.js", "assets/logo.png", "index.html"]


def test_unselected_file_is_never_uploaded(deployer, s3_client, site):
    only_js = DeploymentGroup(id="js", include=("*.js",), exclude=("*",), cache_control="max-age=60")

    report = deployer.deploy(site, [only_js])

    assert _uploads(s3_client) == {"app.js": {"CacheControl": "max-age=60"}}
    assert report.keys("upload") == ["app.js"]


def test_overlapping_patterns_last_group_wins(deployer, s3_client, site):
    deployer.max_workers = 1
    deployer.deploy_site(site, {"*.js": "js", "app.*": "app"})

    assert _uploads(s3_client)["app.js"] == {"CacheControl": "app"}
    assert [c.args[2] for c in s3_client.upload_file.call_args_list].count("app.js") == 2


def test_prune_deletes_only_stale_default_objects(deployer, s3_client, site):
    _set_bucket_contents(s3_client, ["index.html", "old.html", "old.js", "assets/logo.png", "assets/old.png"])

    report = deployer.deploy_site(site, {"*.js": "max-age=60"}, prune=True)

    deleted = sorted(c.kwargs["Key"] for c in s3_client.delete_object.call_args_list)
    # old.js belongs to the "*.js" group and is left alone
    assert deleted == ["assets/old.png", "old.html"]
    assert sorted(report.keys("delete")) == deleted


def test_prune_runs_after_all_uploads(deployer, s3_client, site):
    _set_bucket_contents(s3_client, ["stale.html"])
    groups = plan_deployment({"*": "no-cache"}, prune_on_default=True)

    deployer.deploy(site, groups)

    names = [name for name, _, _ in s3_client.mock_calls if name in ("upload_file", "delete_object")]
    assert names.index("delete_object") > max(i for i, n in enumerate(names) if n == "upload_file")


def test_no_prune_without_flag(deployer, s3_client, site):
    _set_bucket_contents(s3_client, ["stale.html"])

    deployer.deploy_site(site, prune=False)

    s3_client.get_paginator.assert_not_called()
    s3_client.delete_object.assert_not_called()


def test_destination_prefix(s3_client, site):
    deployer = SiteDeployer(bucket_name="unit-test-bucket", s3_client=s3_client, destination_prefix="/www/")
    _set_bucket_contents(s3_client, ["www/index.html", "www/gone.txt"])

    report = deployer.deploy_site(site, prune=True)

    assert set(_uploads(s3_client)) == {"www/index.html", "www/app.js", "www/assets/logo.png"}
    s3_client.get_paginator.return_value.paginate.assert_called_once_with(Bucket="unit-test-bucket", Prefix="www/")
    assert report.keys("delete") == ["www/gone.txt"]


def test_upload_failure_is_collected_not_raised(deployer, s3_client, site):
    def upload(filename, bucket, key, ExtraArgs=None, Config=None):
        if key == "app.js":
            raise _client_error("PutObject")

    s3_client.upload_file.side_effect = upload

    report = deployer.deploy_site(site, {"*.js": "max-age=60"})

    assert report.failed == 1
    assert report.processed == 3
    assert not report.ok
    [error] = report.errors
    assert isinstance(error, TransferError)
    assert error.key == "app.js"
    assert error.operation == "upload"
    assert sorted(report.keys("upload")) == ["assets/logo.png", "index.html"]


def test_delete_failure_is_collected(deployer, s3_client, site):
    _set_bucket_contents(s3_client, ["a.html", "b.html"])
    s3_client.delete_object.side_effect = [_client_error("DeleteObject"), None]
    deployer.max_workers = 1

    report = deployer.deploy_site(site, prune=True)

    assert report.failed == 1
    assert report.keys("delete", OutcomeStatus.FAILED) == ["a.html"]
    assert report.keys("delete") == ["b.html"]


def test_listing_failure_is_reported(deployer, s3_client, site):
    s3_client.get_paginator.return_value.paginate.side_effect = _client_error("ListObjectsV2")

    report = deployer.deploy_site(site, prune=True)

    assert report.failed == 1
    assert report.errors[0].operation == "list"
    assert len(report.keys("upload")) == 3


def test_only_default_group_may_prune(deployer, s3_client, site):
    bad = DeploymentGroup(id="js", include=("*.js",), exclude=("*",), cache_control="x", prune=True)

    with pytest.raises(ConfigurationError):
        deployer.deploy(site, [bad])
    s3_client.upload_file.assert_not_called()


def test_cancelled_before_start(deployer, s3_client, site):
    cancel = threading.Event()
    cancel.set()

    report = deployer.deploy_site(site, prune=True, cancel_event=cancel)

    assert report.cancelled
    assert not report.ok
    s3_client.upload_file.assert_not_called()
    s3_client.delete_object.assert_not_called()


def test_deadline_passed_reports_cancelled_outcomes(deployer, s3_client, site):
    [group] = plan_deployment({"*": "no-cache"}, prune_on_default=True)

    outcomes = deployer.deploy_group(site, group, deadline=time.monotonic() - 1)

    assert len(outcomes) == 3
    assert all(o.status is OutcomeStatus.CANCELLED for o in outcomes)
    s3_client.upload_file.assert_not_called()
    s3_client.get_paginator.assert_not_called()


def test_cancel_during_uploads_skips_remaining_work(deployer, s3_client, site):
    cancel = threading.Event()
    deployer.max_workers = 1

    def upload(filename, bucket, key, ExtraArgs=None, Config=None):
        cancel.set()

    s3_client.upload_file.side_effect = upload
    _set_bucket_contents(s3_client, ["stale.html"])

    report = deployer.deploy_site(site, prune=True, cancel_event=cancel)

    assert s3_client.upload_file.call_count == 1
    assert report.cancelled
    assert [o.status for o in report.outcomes].count(OutcomeStatus.CANCELLED) == 2
    s3_client.delete_object.assert_not_called()
