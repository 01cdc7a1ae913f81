import asyncio
import functools
import logging
from typing import Any, Callable, Optional

import click

from kubeharness.clients import rest
from kubeharness.engines import loggers, tracking, waiting
from kubeharness.helpers import versions
from kubeharness.structs import bodies, conditions, references


class LogFormatParamType(click.Choice):

    def __init__(self) -> None:
        super().__init__(choices=[v.name.lower() for v in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        name: str = super().convert(value, param, ctx)
        return loggers.LogFormat[name.upper()]


class ResourceParamType(click.ParamType):
    name = 'resource'

    def convert(self, value: Any, param: Any, ctx: Any) -> references.Resource:
        if isinstance(value, references.Resource):
            return value
        try:
            return references.parse_resource(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to configure logging in all commands the same way."""
    @click.option('-v', '--verbose', is_flag=True)
    @click.option('-d', '--debug', is_flag=True)
    @click.option('-q', '--quiet', is_flag=True)
    @click.option('--log-format', type=LogFormatParamType(), default='full')
    @click.option('--log-refkey', type=str)
    @click.option('--log-prefix/--no-log-prefix', default=None)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(verbose: bool, quiet: bool, debug: bool,
                log_format: loggers.LogFormat = loggers.LogFormat.FULL,
                log_prefix: Optional[bool] = False,
                log_refkey: Optional[str] = None,
                *args: Any, **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_refkey=log_refkey, log_prefix=log_prefix)
        return fn(*args, **kwargs)

    return wrapper


def object_arguments(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to identify the object in all commands the same way."""
    @click.argument('resource', type=ResourceParamType())
    @click.argument('name')
    @click.option('-n', '--namespace', type=str, default=None)
    @click.option('-k', '--kind', type=str, default=None)
    @click.option('--cluster-scoped', is_flag=True)
    @functools.wraps(fn)  # to preserve other opts/args
    def wrapper(resource: references.Resource, name: str,
                namespace: Optional[str], kind: Optional[str], cluster_scoped: bool,
                *args: Any, **kwargs: Any) -> Any:
        if kind or cluster_scoped:
            resource = references.Resource(resource.group, resource.version, resource.plural,
                                           kind=kind or resource.kind,
                                           namespaced=resource.namespaced and not cluster_scoped,
                                           subresources=resource.subresources)
        if resource.kind is None:
            raise click.UsageError(f"The kind of {resource!r} is unknown; use --kind.")
        obj = bodies.Object(resource, name=name, namespace=namespace)
        return fn(obj, *args, **kwargs)

    return wrapper


def parse_goal(goal: str) -> Optional[conditions.ConditionPredicate]:
    """
    Parse the goal of a wait: ``found``, ``deleted``, ``condition=Type[=Status]``.

    The existence goals are represented as ``None``, the rest are predicates.
    """
    if goal in ['found', 'deleted']:
        return None
    elif goal.startswith('condition='):
        type_, _, status = goal[len('condition='):].partition('=')
        if not type_:
            raise click.BadParameter(f"No condition type in {goal!r}.", param_hint='--for')
        return conditions.condition_is(type_, status or 'True')
    else:
        raise click.BadParameter(f"Unsupported goal {goal!r}.", param_hint='--for')


@click.version_option(prog_name='kubeharness', version=versions.version)
@click.group(name='kubeharness', context_settings=dict(
    auto_envvar_prefix='KUBEHARNESS',
))
def main() -> None:
    pass


@main.command()
@logging_options
@object_arguments
@click.option('--for', 'goal', type=str, default='condition=Ready')
@click.option('-t', '--timeout', type=float, default=None)
@click.option('-p', '--poll-interval', type=float, default=None)
def wait(
        obj: bodies.Object,
        goal: str,
        timeout: Optional[float],
        poll_interval: Optional[float],
) -> None:
    """ Wait until the object is found, deleted, or has a condition. """
    predicate = parse_goal(goal)
    options = waiting.WaitOptions(timeout=timeout, poll_interval=poll_interval)

    async def _wait() -> None:
        async with rest.APIClient.from_env() as client:
            if goal == 'found':
                await waiting.wait_until_found(client, obj, options)
            elif goal == 'deleted':
                await waiting.wait_until_not_found(client, obj, options)
            elif predicate is not None:
                await waiting.wait_until_condition(client, obj, predicate, options)

    asyncio.run(_wait())
    click.echo(f"{obj.kind} {obj.name}: {goal}")


@main.command()
@logging_options
@object_arguments
@click.option('--wait/--no-wait', 'wait_', default=True)
@click.option('-t', '--timeout', type=float, default=None)
def delete(
        obj: bodies.Object,
        wait_: bool,
        timeout: Optional[float],
) -> None:
    """ Delete the object, and wait until it is gone. """

    async def _delete() -> None:
        async with rest.APIClient.from_env() as client:
            tracker = tracking.Tracker(client, logger=logging.getLogger('kubeharness.cli'))
            if wait_:
                await tracker.delete_and_wait(obj, waiting.WaitOptions(timeout=timeout))
            else:
                await tracker.delete(obj)

    asyncio.run(_delete())
    click.echo(f"{obj.kind} {obj.name}: deleted")
