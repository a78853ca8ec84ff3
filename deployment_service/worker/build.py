# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Runs the build command of a checked out project. """

import logging
import queue
import subprocess as sp
import threading

log = logging.getLogger(__name__)


class STOP_WORK(object):
    """ A sentinel value, indicating that a stream reached its end. """
    pass


class BuildResult(object):
    """
    :param returncode: exit status of the build command
    :param stderr_lines: number of lines the build wrote to its standard error
    """

    def __init__(self, returncode, stderr_lines):
        self.returncode = returncode
        self.stderr_lines = stderr_lines

    @property
    def succeeded(self):
        return self.returncode == 0 and self.stderr_lines == 0

    def __repr__(self):
        return "<BuildResult returncode=%r stderr_lines=%r>" % (
            self.returncode, self.stderr_lines)


def _read_stream(stream, name, lines):
    try:
        for raw in iter(stream.readline, b""):
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if line.strip():
                lines.put((name, line))
    finally:
        stream.close()
        lines.put(STOP_WORK)


def run_build(conf, sourcedir, deployment_log):
    """
    Runs conf.build_command in sourcedir through the shell.

    Standard output and standard error are read concurrently and every line
    is passed to deployment_log as soon as it is read. Lines of one stream
    keep their order.

    :returns: BuildResult
    """
    deployment_log.info("Running %r" % conf.build_command)
    try:
        proc = sp.Popen(conf.build_command, shell=True, cwd=sourcedir,
                        stdin=sp.DEVNULL, stdout=sp.PIPE, stderr=sp.PIPE)
    except OSError as e:
        deployment_log.error("ERROR: cannot run the build command: %s" % e)
        return BuildResult(returncode=None, stderr_lines=0)

    lines = queue.Queue()
    readers = [
        threading.Thread(target=_read_stream, args=(proc.stdout, "stdout", lines),
                         name="build-stdout", daemon=True),
        threading.Thread(target=_read_stream, args=(proc.stderr, "stderr", lines),
                         name="build-stderr", daemon=True),
    ]
    for reader in readers:
        reader.start()

    stderr_lines = 0
    open_streams = len(readers)
    while open_streams:
        item = lines.get()
        if item is STOP_WORK:
            open_streams -= 1
            continue
        stream, line = item
        if stream == "stderr":
            stderr_lines += 1
            deployment_log.error(line)
        else:
            deployment_log.info(line)

    returncode = proc.wait()
    for reader in readers:
        reader.join()

    result = BuildResult(returncode, stderr_lines)
    if returncode != 0:
        deployment_log.error("ERROR: build exited with status %d" % returncode)
    elif stderr_lines:
        deployment_log.error("ERROR: build wrote %d line(s) to stderr" % stderr_lines)
    log.debug("Build in %s finished: %r", sourcedir, result)
    return result
