"""
Base service and provider framework
"""

import asyncio
from collections import OrderedDict
from contextlib import suppress
import inspect
import logging
from typing import Callable, Type

from dnsmasqmgr.event import Event


class ServiceException(Exception):
    pass


class InvalidProvider(ServiceException):
    pass


class ProviderDependencyMissing(ServiceException):
    pass


class ProviderDependencyLoop(ServiceException):
    pass


logger = logging.getLogger("service")


def provider_requirements(fn: Callable) -> dict:
    """
    Return the arguments of ``fn`` annotated with a ``Provider`` subclass.
    """
    if inspect.isclass(fn):
        fn = fn.__init__
    return {
        arg: cls
        for arg, cls in getattr(fn, "__annotations__", {}).items()
        if inspect.isclass(cls) and issubclass(cls, Provider)
    }


class Provider:
    """
    Base class for providers.

    A provider is a processing unit running within a service. Provider
    subclasses are passed to ``Service.add_provider()`` along with any keyword
    arguments for their initialization, and exactly one instance of each is
    created.

    Arguments of ``__init__()`` annotated with a ``Provider`` subclass receive
    the instance of that provider, which also decides the order in which
    providers are initialized.

    ``start()`` and ``stop()`` run before and after the main loop, in
    initialization order and in reverse order respectively. They may be
    async. A provider with a ``main()`` coroutine has it run for the lifetime
    of the service.
    """
    def __init__(self):
        pass

    @classmethod
    def get_provider_class(cls):
        return cls

    @classmethod
    def get_name(cls):
        return cls.__name__

    def start(self):
        """
        Called when the service starts
        """
        pass

    def stop(self):
        """
        Called when the service stops
        """
        pass


class EventSubscription:
    """
    Represents an event subscription.
    """
    def __init__(self, callback: Callable, params: dict):
        self.callback = callback
        self.params = params

    def match(self, event: Event):
        """
        Match the event params.

        Only params that have been specified will be considered. If no params
        were given, all events will match.
        """
        for item, value in self.params.items():
            if getattr(event, item) != value:
                return False
        return True


class Service(Provider):
    """
    Service with dependency injected providers.

    Example::

        class LeasesProvider(Provider):
            def __init__(self, rpc: RPC):
                # The instance of RPC is passed as the rpc argument due to
                # the annotation
                self.rpc = rpc

        service = Service()
        service.add_provider(MQTT)
        service.add_provider(RPC)
        service.add_provider(LeasesProvider)
        asyncio.run(service.run())
    """
    def __init__(self):
        # Indexed by class, value is kwargs
        self.provider_classes: dict[Type[Provider], dict] = {
            self.__class__: {},
        }
        # Indexed by provider class, value is real class
        self.provider_class_map: dict[Type[Provider], Type[Provider]] = {
            self.get_provider_class(): self.__class__,
        }
        # Provider instances, indexed by class, value is instance
        self.providers: OrderedDict[Type[Provider], Provider] = OrderedDict()

        self.main_loop: asyncio.AbstractEventLoop | None = None
        self.main_future: asyncio.Future | None = None
        self.main_task: asyncio.Task | None = None
        self.started: bool = False
        self.event_registry: dict[Type[Event], list[EventSubscription]] = {}
        self.event_tasks: set[asyncio.Task] = set()

    def add_provider(self, cls: Type[Provider], **kwargs):
        """
        Add a provider class.

        If any keyword arguments are given, they are passed to the provider on
        initialization.
        """
        if not issubclass(cls, Provider):
            raise InvalidProvider(cls.__name__)
        self.provider_class_map[cls.get_provider_class()] = cls
        self.provider_classes[cls] = kwargs

    def exec(self, fn: Callable, **kwargs):
        """
        Execute callable fn with providers. Arguments not given in kwargs are
        looked up by their provider annotation.
        """
        for arg, cls in provider_requirements(fn).items():
            if arg in kwargs:
                continue
            if cls not in self.providers:
                raise ProviderDependencyMissing(cls.__name__)
            kwargs[arg] = self.providers[cls]
        return fn(**kwargs)

    async def load_providers(self):
        """
        Load providers in order, according to their __init__ annotations.
        """
        if self.get_provider_class() not in self.providers:
            self.providers[self.get_provider_class()] = self

        pending_providers = [
            provider for provider in self.provider_class_map
            if provider not in self.providers
        ]

        while pending_providers:
            len_pending = len(pending_providers)
            for provider in list(pending_providers):
                cls = self.provider_class_map[provider]
                resolved = True
                for requirement in provider_requirements(cls).values():
                    if requirement not in self.provider_class_map:
                        raise ProviderDependencyMissing(f"Provider {provider.get_name()} requires {requirement.__name__} but it is not available")
                    if requirement not in self.providers:
                        # Try again next iteration
                        resolved = False
                if resolved:
                    self.providers[provider] = self.exec(cls, **self.provider_classes[cls])
                    pending_providers.remove(provider)
            if len_pending == len(pending_providers):
                provider_names = ", ".join([provider.get_name() for provider in pending_providers])
                raise ProviderDependencyLoop(f"Provider dependency loop detected among {provider_names}")

    async def get_provider(self, cls: Type[Provider]):
        """
        Return the instance of the provider ``cls``.
        """
        return self.providers[cls]

    async def start_providers(self):
        for provider in self.providers.values():
            if provider is not self:
                logger.debug(f"Starting {provider.get_name()} provider")
                if inspect.iscoroutinefunction(provider.start):
                    await provider.start()
                else:
                    provider.start()

    async def stop_providers(self):
        for provider in reversed(self.providers.values()):
            if provider is not self:
                logger.debug(f"Stopping {provider.get_name()} provider")
                try:
                    if inspect.iscoroutinefunction(provider.stop):
                        await provider.stop()
                    else:
                        provider.stop()
                except Exception:
                    logger.exception(f"Failed to stop {provider.get_name()}")

    async def wait_start(self):
        if self.started:
            return
        if not self.main_future:
            self.main_future = asyncio.get_running_loop().create_future()
        await self.main_future

    async def service_main(self) -> int:
        """
        Starts and runs all providers
        """
        logger.info("Starting providers")
        try:
            await self.start_providers()
        except Exception as e:
            # Wake up anyone in wait_start()
            if not self.main_future:
                self.main_future = self.main_loop.create_future()
            if not self.main_future.done():
                self.main_future.set_exception(e)
            raise

        self.started = True
        if self.main_future and not self.main_future.done():
            self.main_future.set_result(True)

        main_tasks = []
        for provider in self.providers.values():
            if provider is not self and hasattr(provider, "main"):
                main_tasks.append(provider.main())

        ret = 0

        try:
            await asyncio.gather(*main_tasks)
        except asyncio.CancelledError:
            logger.info("Service cancelled")
        except SystemExit as e:
            ret = e.code

        logger.info("Stopping providers")
        await self.stop_providers()
        await self.cancel_event_tasks()
        self.started = False

        return ret

    async def cancel_event_tasks(self):
        for task in list(self.event_tasks):
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self.event_tasks.clear()

    async def run(self) -> int:
        "Run the service"
        self.main_loop = asyncio.get_running_loop()
        await self.load_providers()
        return await self.service_main()

    async def start_background(self):
        """
        Run providers in a background task
        """
        self.main_loop = asyncio.get_running_loop()
        await self.load_providers()
        self.main_task = self.main_loop.create_task(self.service_main())

    async def stop_background(self):
        """
        Stop providers in the background task
        """
        if self.main_task:
            self.main_task.cancel()
            with suppress(asyncio.CancelledError):
                await self.main_task
            self.main_task = None

    def subscribe_event(self, event_class: Type[Event], callback: Callable, **params):
        """
        Subscribe to an event. The callback must be a coroutine function
        taking a single parameter for the event instance.

        If any ``params`` are given, the callback will only be called if the
        given parameters match the respective event properties.
        """
        if not inspect.iscoroutinefunction(callback):
            raise ServiceException("callback must be a coroutine")
        subscription = EventSubscription(callback, params)
        self.event_registry.setdefault(event_class, []).append(subscription)

    def unsubscribe_event(self, event_class: Type[Event], callback: Callable, **params):
        """
        Unsubscribe to an event. Parameters must match the one used for
        ``subscribe_event()``
        """
        subscriptions = self.event_registry.get(event_class)
        if not subscriptions:
            return
        for index, subscription in enumerate(subscriptions):
            if subscription.callback == callback and subscription.params == params:
                subscriptions.pop(index)
                break
        if not subscriptions:
            del self.event_registry[event_class]

    def publish_event(self, event: Event):
        """
        Publish an event to subscribers. May be called from any thread.
        """
        logger.debug(f"Publishing event: {event}")
        self.main_loop.call_soon_threadsafe(self._schedule_event, event)

    def _schedule_event(self, event: Event):
        task = self.main_loop.create_task(self.handle_event(event))
        self.event_tasks.add(task)
        task.add_done_callback(self.event_tasks.discard)

    async def handle_event(self, event: Event):
        "Handle an event. Only called in the main thread"
        logger.debug(f"Handling event: {event}")
        for subscriber in list(self.event_registry.get(event.__class__, [])):
            if subscriber.match(event):
                try:
                    await subscriber.callback(event)
                except Exception:
                    logger.exception(f"Failure in event handler for {event}")
