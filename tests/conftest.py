# -*- coding: utf-8 -*-
# SPDX-License-Identifier: MIT
import pytest

from deployment_service.common import messaging


@pytest.fixture(autouse=True)
def reset_in_memory_bus():
    messaging.in_memory_bus.reset()
    yield
    messaging.in_memory_bus.reset()


@pytest.fixture
def quick_listen():
    """ Makes bus listeners notice a stop request quickly. """
    with pytest.MonkeyPatch.context() as mp:
        mp.setattr(messaging, "LISTEN_POLL_INTERVAL", 0.05)
        yield
