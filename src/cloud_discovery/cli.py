"""
Command line interface for cloud discovery
"""
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import click
import yaml

from .cache import FileCache
from .config import OUTPUT_FORMATS, init_config, load_config, validate_config
from .connectors import create_connectors
from .context import Context
from .engine import DiscoveryEngine
from .events import LoggingEventHandler, ProgressEventHandler
from .exceptions import (
    CloudDiscoveryError, ConfigurationError, DiscoveryCancelledError, FatalDiscoveryError
)
from .filters import parse_filter
from .models import CloudProvider, DiscoveryOptions, DiscoveryResult, ResourceFilter
from .output import export_excel, render
from .utils.logging_config import setup_logging

# Conventional exit status for a run stopped by SIGINT
EXIT_INTERRUPTED = 130


def _build_engine(config: Dict[str, Any], aws_profile: Optional[str] = None,
                  use_cache: bool = False, progress: bool = False) -> DiscoveryEngine:
    handlers = [LoggingEventHandler()]
    if progress:
        handlers.append(ProgressEventHandler(file=sys.stderr))
    cache = FileCache(config['discovery']['cache_dir']) if use_cache else None
    return DiscoveryEngine(
        cache=cache,
        event_handlers=handlers,
        connectors=create_connectors(config, aws_profile=aws_profile),
    )


def _parse_tags(values: Sequence[str]) -> Dict[str, str]:
    tags = {}
    for item in values:
        key, _, value = item.partition('=')
        if not key:
            raise click.BadParameter(f"expected KEY=VALUE or KEY, got {item!r}", param_hint='--tag')
        tags[key] = value
    return tags


def _write_output(result: DiscoveryResult, output_format: str, output: Optional[str]) -> None:
    if output_format == 'excel':
        output_file = export_excel(result, output or 'discovery_results.xlsx')
        click.echo(f"✅ Results written to: {output_file}", err=True)
        return

    text = render(result, output_format)
    if output:
        Path(output).parent.mkdir(parents=True, exist_ok=True)
        Path(output).write_text(text + "\n")
        click.echo(f"✅ Results written to: {output}", err=True)
    else:
        click.echo(text)


def _print_summary(result: DiscoveryResult) -> None:
    meta = result.metadata
    click.echo(f"\n📊 Found {meta.resource_count} resources in {meta.duration:.1f}s", err=True)
    for provider, count in sorted(meta.provider_stats.items()):
        click.echo(f"   {provider.upper()}: {count} resources", err=True)
    if meta.error_count or meta.warning_count:
        click.echo(f"⚠️  {meta.error_count} errors, {meta.warning_count} warnings during discovery",
                   err=True)


def _describe_filter(rule: ResourceFilter) -> str:
    parts = [rule.type.value, rule.field, rule.operator.value]
    if rule.values is not None:
        parts.append(",".join(str(v) for v in rule.values))
    elif rule.value is not None:
        parts.append(str(rule.value))
    return " ".join(parts)


def _show_plan(options: DiscoveryOptions, output_format: str, output: Optional[str],
               config: Dict[str, Any], aws_profile: Optional[str]) -> None:
    click.echo("🔍 Discovery Plan:")
    click.echo("==================")
    click.echo(f"Providers: {', '.join(p.value for p in options.providers)}")
    click.echo(f"Regions: {', '.join(options.regions) if options.regions else 'all configured per provider'}")
    click.echo("Resource Types: "
               f"{', '.join(options.resource_types) if options.resource_types else 'all supported per provider'}")
    if options.tags:
        click.echo(f"Tags: {', '.join(f'{k}={v}' if v else k for k, v in options.tags.items())}")
    for rule in options.filters:
        click.echo(f"Filter: {_describe_filter(rule)}")
    click.echo(f"Max Concurrency: {options.max_concurrency}")
    click.echo(f"Timeout: {options.timeout:g}s")
    click.echo(f"Cache: {'enabled, ttl ' + format(options.cache_ttl, 'g') + 's' if options.use_cache else 'disabled'}")
    click.echo(f"Output Format: {output_format}")
    if output:
        click.echo(f"Output File: {output}")

    if CloudProvider.AWS in options.providers:
        aws = config['providers']['aws']
        click.echo("\nProvider-Specific Details:")
        click.echo(f"  AWS: Profile={aws_profile or aws.get('profile') or 'default'}, "
                   f"Regions={', '.join(aws.get('regions') or []) or 'all enabled'}")

    click.echo("\nRemove --dry-run to execute discovery.")


def _run_discovery(engine: DiscoveryEngine, options: DiscoveryOptions) -> DiscoveryResult:
    """Run discovery, turning SIGINT into cancellation of the run context"""
    run_ctx = Context()

    def _cancel(signum, frame):
        click.echo("\n⚠️  Interrupted, cancelling discovery...", err=True)
        run_ctx.cancel()

    if threading.current_thread() is not threading.main_thread():
        return engine.discover(options, run_ctx)

    previous = signal.signal(signal.SIGINT, _cancel)
    try:
        return engine.discover(options, run_ctx)
    finally:
        signal.signal(signal.SIGINT, previous)


@click.group()
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='Config file (default: search .cloud-discovery.yaml)')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Override the configured log level')
@click.option('--verbose', '-v', is_flag=True, help='Shortcut for --log-level DEBUG')
@click.pass_context
def cli(ctx, config_path, log_level, verbose):
    """Multi-cloud infrastructure discovery"""
    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    logging_config = config['logging']
    if verbose:
        logging_config['level'] = 'DEBUG'
    elif log_level:
        logging_config['level'] = log_level.upper()
    setup_logging(
        log_level=logging_config['level'],
        log_file=logging_config.get('file'),
        log_format=logging_config['format'],
        enable_color=logging_config.get('color', True),
    )

    ctx.obj['config'] = config


@cli.command()
@click.option('--provider', '-p', 'providers', multiple=True, help='Cloud provider to scan (repeatable)')
@click.option('--region', '-r', 'regions', multiple=True, help='Region to scan (repeatable)')
@click.option('--resource-type', '-t', 'resource_types', multiple=True, help='Resource type to discover (repeatable)')
@click.option('--tag', 'tags', multiple=True, help='Required tag as KEY=VALUE, or KEY for presence')
@click.option('--filter', 'filters', multiple=True,
              help='Filter as [include|exclude:]FIELD:OPERATOR[:VALUE] (repeatable)')
@click.option('--concurrency', type=int, help='Maximum providers discovered in parallel')
@click.option('--timeout', type=float, help='Per-provider timeout in seconds')
@click.option('--cache/--no-cache', 'use_cache', default=None, help='Reuse cached results')
@click.option('--cache-ttl', type=float, help='Cache entry lifetime in seconds')
@click.option('--format', '-f', 'output_format', type=click.Choice(OUTPUT_FORMATS), help='Output format')
@click.option('--output', '-o', help='Output file (default: stdout)')
@click.option('--dry-run', is_flag=True, help='Show the discovery plan without calling any provider')
@click.option('--aws-profile', help='AWS profile to use')
@click.option('--include-defaults', is_flag=True, help='Include provider default resources')
@click.option('--include-managed/--exclude-managed', default=True,
              help='Include resources managed by other services')
@click.option('--progress', is_flag=True, help='Show a progress bar on stderr')
@click.pass_context
def discover(ctx, providers, regions, resource_types, tags, filters, concurrency, timeout,
             use_cache, cache_ttl, output_format, output, dry_run, aws_profile,
             include_defaults, include_managed, progress):
    """Discover resources across cloud providers"""
    config = ctx.obj['config']
    settings = config['discovery']
    output_format = output_format or config['output_format']

    try:
        options = DiscoveryOptions(
            providers=tuple(providers) or (CloudProvider.AWS,),
            regions=tuple(regions),
            resource_types=tuple(resource_types),
            tags=_parse_tags(tags),
            filters=tuple(parse_filter(f) for f in filters),
            include_managed=include_managed,
            include_defaults=include_defaults,
            max_concurrency=concurrency if concurrency is not None else settings['max_concurrency'],
            timeout=timeout if timeout is not None else settings['timeout'],
            use_cache=use_cache if use_cache is not None else settings['use_cache'],
            cache_ttl=cache_ttl if cache_ttl is not None else settings['cache_ttl'],
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e))

    if dry_run:
        _show_plan(options, output_format, output, config, aws_profile)
        return

    engine = _build_engine(config, aws_profile=aws_profile, use_cache=options.use_cache, progress=progress)

    try:
        result = _run_discovery(engine, options)
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    except DiscoveryCancelledError as e:
        _write_output(e.result, output_format, output)
        _print_summary(e.result)
        click.echo("❌ Discovery cancelled; partial results written", err=True)
        ctx.exit(EXIT_INTERRUPTED)
    except FatalDiscoveryError as e:
        _write_output(e.result, output_format, output)
        _print_summary(e.result)
        click.echo("❌ Discovery aborted by a fatal provider error; partial results written", err=True)
        ctx.exit(1)
    else:
        _write_output(result, output_format, output)
        _print_summary(result)


@cli.command()
@click.pass_context
def providers(ctx):
    """List providers with a registered connector"""
    engine = _build_engine(ctx.obj['config'])
    registered = set(engine.list_providers())
    for provider in CloudProvider:
        marker = "✅" if provider in registered else "  "
        click.echo(f"{marker} {provider.value}")


@cli.command()
@click.argument('provider')
@click.pass_context
def regions(ctx, provider):
    """List regions available for PROVIDER"""
    engine = _build_engine(ctx.obj['config'])
    try:
        for region in engine.get_provider_regions(provider):
            click.echo(region)
    except CloudDiscoveryError as e:
        raise click.ClickException(str(e))


@cli.command('resource-types')
@click.argument('provider')
@click.pass_context
def resource_types(ctx, provider):
    """List resource types PROVIDER can discover"""
    engine = _build_engine(ctx.obj['config'])
    try:
        for resource_type in engine.get_resource_types(provider):
            click.echo(resource_type)
    except CloudDiscoveryError as e:
        raise click.ClickException(str(e))


@cli.command('validate-credentials')
@click.option('--provider', '-p', 'providers', multiple=True, help='Provider to check (default: all registered)')
@click.option('--aws-profile', help='AWS profile to use')
@click.pass_context
def validate_credentials(ctx, providers, aws_profile):
    """Check that provider credentials are usable"""
    engine = _build_engine(ctx.obj['config'], aws_profile=aws_profile)
    try:
        results = engine.validate_credentials(list(providers) or None)
    except CloudDiscoveryError as e:
        raise click.ClickException(str(e))

    failed = 0
    for provider, error in results.items():
        if error:
            failed += 1
            click.echo(f"❌ {provider.value}: {error}")
        else:
            click.echo(f"✅ {provider.value}: credentials valid")
    if failed:
        ctx.exit(1)


@cli.group('config')
def config_group():
    """Manage the configuration file"""


@config_group.command('init')
@click.option('--path', type=click.Path(dir_okay=False), help='Where to write the config file')
@click.option('--force', is_flag=True, help='Overwrite an existing file')
def config_init(path, force):
    """Write a config file with the default settings"""
    try:
        config_path = init_config(path, force=force)
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    click.echo(f"✅ Config file created: {config_path}")


@config_group.command('show')
@click.pass_context
def config_show(ctx):
    """Print the effective configuration"""
    click.echo(yaml.safe_dump(ctx.obj['config'], default_flow_style=False, sort_keys=False), nl=False)


@config_group.command('validate')
@click.argument('path', required=False, type=click.Path(dir_okay=False))
@click.pass_context
def config_validate(ctx, path):
    """Validate PATH, or the loaded configuration"""
    try:
        if path:
            load_config(path)
        else:
            validate_config(ctx.obj['config'])
    except ConfigurationError as e:
        raise click.ClickException(str(e))
    click.echo("✅ Configuration is valid")


@cli.group('cache')
def cache_group():
    """Manage cached discovery results"""


@cache_group.command('list')
@click.pass_context
def cache_list(ctx):
    """List live cache keys"""
    keys: List[str] = FileCache(ctx.obj['config']['discovery']['cache_dir']).keys()
    if not keys:
        click.echo("Cache is empty")
    for key in keys:
        click.echo(key)


@cache_group.command('clear')
@click.pass_context
def cache_clear(ctx):
    """Remove every cached result"""
    cache = FileCache(ctx.obj['config']['discovery']['cache_dir'])
    cache.clear()
    click.echo(f"✅ Cache cleared: {cache.cache_dir}")


if __name__ == '__main__':
    cli(obj={})
