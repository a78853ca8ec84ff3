# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
""" Command line entry points of the deployment service. """

import logging
import sys

import click

from deployment_service import conf
from deployment_service.launcher.base import worker_environment


@click.group()
def cli():
    """ Manage the deployment service. """


@cli.command("run-dispatcher")
@click.option("--host", default=conf.host, show_default=True)
@click.option("--port", default=conf.port, type=int, show_default=True)
@click.option("--debug", is_flag=True, default=conf.debug)
def run_dispatcher(host, port, debug):
    """ Runs the deployment dispatcher. """
    from deployment_service.web import create_app

    logging.info("Starting the deployment dispatcher")
    app = create_app(conf)
    app.run(host=host, port=port, debug=debug, threaded=True)


@cli.command("run-relay")
@click.option("--host", default=conf.relay_host, show_default=True)
@click.option("--port", default=conf.relay_port, type=int, show_default=True)
def run_relay(host, port):
    """ Runs the log relay. """
    from deployment_service.relay.server import run

    conf.relay_host = host
    conf.relay_port = port
    logging.info("Starting the log relay")
    run(conf)


@cli.command("run-router")
@click.option("--host", default=conf.router_host, show_default=True)
@click.option("--port", default=conf.router_port, type=int, show_default=True)
@click.option("--debug", is_flag=True, default=conf.debug)
def run_router(host, port, debug):
    """ Runs the edge router. """
    from deployment_service.router import create_app

    logging.info("Starting the edge router for *.%s", conf.base_domain)
    app = create_app(conf)
    app.run(host=host, port=port, debug=debug, threaded=True)


@cli.command("build")
@click.argument("git_url")
@click.option("--name", help="Deployment id, generated when omitted.")
def build(git_url, name):
    """ Builds and uploads a repository in this process, without a launcher. """
    from deployment_service.web.views import generate_deployment_id
    from deployment_service.worker.main import run_worker

    deployment_id = name or generate_deployment_id()
    click.echo("Building %s as %s" % (git_url, deployment_id))
    status = run_worker(worker_environment(conf, deployment_id, git_url))
    click.echo("Build finished: %s" % status)
    sys.exit(0 if status == "success" else 1)


if __name__ == "__main__":
    cli()
