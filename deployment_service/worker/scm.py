# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
"""SCM handler functions."""

import logging
import re
import subprocess as sp

log = logging.getLogger(__name__)


class SCM(object):
    "SCM abstraction class"

    # Assuming git for HTTP schemas
    types = {
        "git": ("git://", "git+http://", "git+https://", "git+ssh://",
                "ssh://", "http://", "https://", "file://"),
    }

    def __init__(self, url):
        """Initialize the SCM object using the specified repository URL.

        NOTE: only git URLs in the following formats are supported atm:
            git://
            git+http://
            git+https://
            git+ssh://
            ssh://
            http://
            https://
            file://

        A commit, tag or branch may be appended as ``?#<ref>``.

        :param str url: The unmodified repository URL
        :raises: RuntimeError
        """
        self.url = url

        for scmtype, schemes in SCM.types.items():
            if self.url.startswith(schemes):
                self.scheme = scmtype
                break
        else:
            raise RuntimeError("Invalid SCM URL: %s" % url)

        match = re.search(r"^(?P<repository>.*/(?P<name>[^?#/]+))/?(\?#(?P<commit>.*))?$", url)
        if not match:
            raise RuntimeError("Invalid SCM URL: %s" % url)
        self.repository = match.group("repository")
        if self.repository.startswith("git+"):
            self.repository = self.repository[4:]
        self.name = match.group("name")
        if self.name.endswith(".git"):
            self.name = self.name[:-4]
        self.commit = match.group("commit")

    def __repr__(self):
        return "<SCM %s%s>" % (self.repository, "?#" + self.commit if self.commit else "")

    @staticmethod
    def _run(cmd, chdir=None):
        proc = sp.Popen(cmd, stdout=sp.PIPE, stderr=sp.PIPE, stdin=sp.DEVNULL, cwd=chdir)
        stdout, stderr = proc.communicate()
        if stdout:
            log.debug(stdout)
        if stderr:
            log.warning(stderr)
        if proc.returncode != 0:
            raise RuntimeError("Failed on %r, retcode %r, out %r, err %r" % (
                cmd, proc.returncode, stdout, stderr))
        return proc.returncode

    def checkout(self, scmdir):
        """Checkout the repository from SCM.

        :param str scmdir: The working directory
        :returns: str -- the directory that the repository was checked-out into
        :raises: RuntimeError
        """
        sourcedir = "%s/%s" % (scmdir, self.name)

        clone_cmd = ["git", "clone", "-q"]
        if not self.commit:
            clone_cmd.extend(["--depth", "1"])
        clone_cmd.extend([self.repository, sourcedir])

        SCM._run(clone_cmd, chdir=scmdir)
        if self.commit:
            SCM._run(["git", "checkout", "-q", self.commit], chdir=sourcedir)
        return sourcedir
