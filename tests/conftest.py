"""
Pytest config

Coroutine tests are run in their own event loop. When a test requests the
``service`` fixture the service is started in the background first, and
provider fixtures (which return coroutines) are resolved once the providers
exist.
"""

import asyncio
import functools
import inspect
import logging
import pytest
import traceback

from tests.conftest_mqtt import *
from tests.conftest_service import *
from tests.conftest_providers import *


logger = logging.getLogger("conftest")


SETUP_TIMEOUT = 1
TEST_TIMEOUT = 5
TEARDOWN_TIMEOUT = 1


def pytest_configure(config):
    if config.option.logdebug:
        config.option.log_cli_level = "DEBUG"


def pytest_addoption(parser):
    parser.addoption("--logdebug", action="store_true", help="Enable debug logging")


async def setup_fixtures(service, mqttbroker, kwargs: dict):
    if mqttbroker:
        await mqttbroker.start()

    if service:
        await service.start_background()
        for name, value in kwargs.items():
            if inspect.iscoroutine(value):
                kwargs[name] = await value
        await service.wait_start()


async def teardown_fixtures(service, mqttbroker):
    if service:
        await service.stop_background()
    if mqttbroker:
        await mqttbroker.stop()


def timeout_location(e: TimeoutError) -> str:
    if e.__cause__ and e.__cause__.__traceback__:
        frame = traceback.extract_tb(e.__cause__.__traceback__)[-1]
        return f" at {frame.filename}:{frame.lineno}"
    return ""


def wrap_async_test(pyfuncitem, test_fn):
    service = pyfuncitem.funcargs.get("service", None)
    mqttbroker = pyfuncitem.funcargs.get("mqttbroker", None)

    async def run_test(*args, **kwargs):
        try:
            async with asyncio.timeout(SETUP_TIMEOUT):
                await setup_fixtures(service, mqttbroker, kwargs)
        except TimeoutError:
            pytest.fail("Timed out during service setup")

        try:
            async with asyncio.timeout(TEST_TIMEOUT):
                await test_fn(*args, **kwargs)
        except TimeoutError as e:
            errormsg = f"Timed out during test execution{timeout_location(e)}"
            logger.error(errormsg)
            pytest.fail(errormsg)
        finally:
            logger.info("Test completed")

        try:
            async with asyncio.timeout(TEARDOWN_TIMEOUT):
                await teardown_fixtures(service, mqttbroker)
        except TimeoutError:
            pytest.fail("Timed out during service shutdown")

    @functools.wraps(test_fn)
    def wrapped_async_test(*args, **kwargs):
        asyncio.run(run_test(*args, **kwargs))

    return wrapped_async_test


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        pyfuncitem.obj = wrap_async_test(pyfuncitem, pyfuncitem.obj)
    else:
        assert (
            pyfuncitem.funcargs.get("service", None) is None
        ), "Test with service fixture must be a coroutine"
