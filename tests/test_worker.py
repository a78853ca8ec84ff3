# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import os
import shutil
import tempfile

import mock
import pytest
from mock import patch

from deployment_service.common.errors import StorageError
from deployment_service.launcher.base import worker_environment
from deployment_service.worker.logs import DeploymentLog
from deployment_service.worker.main import main, run_worker
from deployment_service.worker.tasks import build

from tests import drain_bus, make_conf, subscribe_logs

GIT_URL = "https://github.com/example/site.git"


class TestDeploymentLog:

    def test_publishes_in_order(self):
        q = subscribe_logs()
        deployment_log = DeploymentLog(make_conf(), "foo")
        deployment_log.info("one")
        deployment_log.error("two")
        assert deployment_log.finish("success", uploaded=2) == "success"

        bodies = drain_bus(q)
        assert [b["text"] for b in bodies] == ["one", "two", "Build finished: success"]
        assert [b["type"] for b in bodies] == ["log", "log", "status"]
        assert bodies[-1]["uploaded"] == 2
        assert all(b["deployment_id"] == "foo" for b in bodies)

    def test_nothing_after_status(self):
        deployment_log = DeploymentLog(make_conf(), "foo")
        deployment_log.finish("failure")
        with pytest.raises(RuntimeError):
            deployment_log.info("late")


class TestRunWorker:

    def setup_method(self, test_method):
        self.tempdir = tempfile.mkdtemp()
        self.store_dir = os.path.join(self.tempdir, "store")
        self.workdirs = []
        self.patcher = patch("deployment_service.worker.main.SCM")
        self.scm = self.patcher.start()
        self.scm.return_value.checkout.side_effect = self.checkout
        self.bus = subscribe_logs()

    def teardown_method(self, test_method):
        self.patcher.stop()
        shutil.rmtree(self.tempdir)

    def checkout(self, scmdir):
        self.workdirs.append(scmdir)
        sourcedir = os.path.join(scmdir, "site")
        os.mkdir(sourcedir)
        return sourcedir

    def environ(self, build_command):
        conf = make_conf(local_storage_dir=self.store_dir, build_command=build_command)
        return worker_environment(conf, "foo", GIT_URL)

    def stored(self, relative_path):
        return os.path.join(self.store_dir, "__outputs", "foo", relative_path)

    def test_success(self):
        status = run_worker(self.environ(
            "mkdir -p dist/css && echo '<h1>hi</h1>' > dist/index.html "
            "&& echo 'body {}' > dist/css/site.css"))

        assert status == "success"
        self.scm.assert_called_once_with(GIT_URL)
        assert os.path.isfile(self.stored("index.html"))
        assert os.path.isfile(self.stored("css/site.css"))

        bodies = drain_bus(self.bus)
        texts = [b["text"] for b in bodies]
        assert texts[0] == "Cloning %s" % GIT_URL
        assert "Build complete" in texts
        assert "Uploaded index.html" in texts
        assert [b["type"] for b in bodies[:-1]] == ["log"] * (len(bodies) - 1)
        assert bodies[-1]["type"] == "status"
        assert bodies[-1]["status"] == "success"
        assert bodies[-1]["uploaded"] == 2
        assert bodies[-1]["failed"] == 0

    def test_clone_failure(self):
        self.scm.return_value.checkout.side_effect = RuntimeError("repository not found")
        status = run_worker(self.environ("mkdir -p dist && touch dist/index.html"))

        assert status == "failure"
        bodies = drain_bus(self.bus)
        assert bodies[-2]["text"].startswith("ERROR: failed to clone %s" % GIT_URL)
        assert bodies[-1]["status"] == "failure"
        assert bodies[-1]["uploaded"] == 0
        assert "Creating build..." not in [b["text"] for b in bodies]

    def test_failed_build_still_uploads(self):
        status = run_worker(self.environ(
            "mkdir -p dist && echo partial > dist/index.html && exit 1"))

        assert status == "failure"
        assert os.path.isfile(self.stored("index.html"))
        final = drain_bus(self.bus)[-1]
        assert final["status"] == "failure"
        assert final["uploaded"] == 1

    def test_stderr_fails_the_build(self):
        status = run_worker(self.environ(
            "mkdir -p dist && echo ok > dist/index.html && echo warning 1>&2"))
        assert status == "failure"

    def test_nothing_to_upload(self):
        status = run_worker(self.environ("echo nothing to do"))
        assert status == "failure"
        final = drain_bus(self.bus)[-1]
        assert (final["uploaded"], final["failed"]) == (0, 0)

    def test_upload_failure(self):
        store = mock.MagicMock()

        def put(key, body, content_type):
            if key.endswith("b.txt"):
                raise StorageError("Access Denied")

        store.put.side_effect = put
        status = run_worker(self.environ(
            "mkdir -p dist && echo a > dist/a.txt && echo b > dist/b.txt"), store=store)

        assert status == "failure"
        final = drain_bus(self.bus)[-1]
        assert (final["uploaded"], final["failed"]) == (1, 1)

    def test_misconfigured_store_publishes_failure(self):
        conf = make_conf(storage="s3", s3_bucket="")
        status = run_worker(worker_environment(conf, "foo", GIT_URL))

        assert status == "failure"
        self.scm.assert_not_called()
        bodies = drain_bus(self.bus)
        assert bodies[0]["text"] == "ERROR: s3_bucket must be configured for the s3 store"
        assert bodies[-1]["type"] == "status"
        assert bodies[-1]["status"] == "failure"

    @patch("deployment_service.worker.main.run_build", side_effect=OSError("no such shell"))
    def test_unexpected_error_publishes_failure(self, run_build):
        status = run_worker(self.environ("true"))

        assert status == "failure"
        bodies = drain_bus(self.bus)
        assert bodies[-2]["text"] == "ERROR: no such shell"
        assert bodies[-1]["status"] == "failure"
        assert not os.path.exists(self.workdirs[0])

    def test_workdir_removed(self):
        run_worker(self.environ("mkdir -p dist && touch dist/index.html"))
        assert len(self.workdirs) == 1
        assert not os.path.exists(self.workdirs[0])

    def test_missing_environment(self):
        with pytest.raises(ValueError):
            run_worker({"DEPLOYMENT_ID": "foo"})


class TestEntryPoints:

    @patch("deployment_service.worker.main.init_logging")
    @patch("deployment_service.worker.main.run_worker", return_value="success")
    def test_main_success(self, run_worker, init_logging):
        with pytest.raises(SystemExit) as excinfo:
            main()
        assert excinfo.value.code == 0

    @patch("deployment_service.worker.main.init_logging")
    @patch("deployment_service.worker.main.run_worker", return_value="failure")
    def test_main_failure(self, run_worker, init_logging):
        with pytest.raises(SystemExit) as excinfo:
            main()
        assert excinfo.value.code == 1

    @patch("deployment_service.worker.tasks.run_worker", return_value="success")
    def test_celery_task(self, run_worker):
        environ = {"DEPLOYMENT_ID": "foo", "GIT_REPOSITORY_URL": GIT_URL}
        assert build(environ) == "success"
        run_worker.assert_called_once_with(environ)
        assert build.name == "deployment_service.worker.build"
