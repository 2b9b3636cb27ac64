#!/usr/bin/env python3
"""
CLI tool for running incremental builds
"""

import asyncio
import click
import logging
import sys
from typing import Dict, List, Optional

from ..build.manager import BuildPipeline
from ..config.global_config_loader import GlobalConfig, load_global_config
from ..core.exceptions import BuildFailedError, BuildToolError
from ..main import setup_logging


class BuildCLI:
    """Command-line interface for incremental builds"""

    def __init__(self, global_config: GlobalConfig):
        self.global_config = global_config
        self.logger = logging.getLogger(__name__)

    def _announce_dirty(self, names: List[str]):
        if names:
            click.echo(f"Dirty projects ({len(names)}):")
            for name in names:
                click.echo(f"  - {name}")
        else:
            click.echo("All projects are up to date")

    def _announce_failures(self, failures: List[Dict[str, str]]):
        click.echo(f"Failed projects ({len(failures)}):", err=True)
        for failure in failures:
            click.echo(f"  - {failure['name']}: {failure['reason']}", err=True)

    def _pipeline(self) -> BuildPipeline:
        return BuildPipeline.from_config(
            self.global_config,
            on_dirty=self._announce_dirty,
            on_failures=self._announce_failures
        )

    async def build(self) -> int:
        """Run an incremental build"""
        try:
            report = await self._pipeline().run()
        except BuildFailedError as e:
            click.echo(f"Build failed: {e}", err=True)
            return 1
        except BuildToolError as e:
            click.echo(f"Error: {e}", err=True)
            return 1

        report.print_summary()
        return 0

    async def status(self) -> int:
        """Show which projects would be rebuilt"""
        try:
            pipeline = self._pipeline()
            clean, dirty = await pipeline.detect()
        except BuildToolError as e:
            click.echo(f"Error: {e}", err=True)
            return 1

        click.echo(f"Clean projects ({len(clean)}):")
        for compiled in clean:
            click.echo(f"  - {compiled.name}")
        click.echo(f"Dirty projects ({len(dirty)}):")
        for project in dirty:
            click.echo(f"  - {project.name}")

        holder = pipeline.active_build()
        if holder:
            click.echo(f"Build in progress (pid {holder})")
        return 0

    async def files(self) -> int:
        """List tracked source files"""
        try:
            paths = await self._pipeline().tracked_files()
        except BuildToolError as e:
            click.echo(f"Error: {e}", err=True)
            return 1

        for path in paths:
            click.echo(str(path))
        return 0

    async def clean(self) -> int:
        """Remove build outputs and fingerprints"""
        try:
            removed = await self._pipeline().clean()
        except BuildToolError as e:
            click.echo(f"Error: {e}", err=True)
            return 1

        click.echo("Removed build outputs" if removed else "Nothing to clean")
        return 0


def apply_overrides(
    global_cfg: GlobalConfig,
    projects_dir: Optional[str],
    target_dir: Optional[str],
    jobs: Optional[int]
) -> GlobalConfig:
    if projects_dir:
        global_cfg.build.projects_dir = projects_dir
    if target_dir:
        global_cfg.build.target_dir = target_dir
    if jobs:
        global_cfg.build.max_concurrent_compiles = jobs
    return global_cfg


@click.group()
@click.option('--config', 'config_path', default=None, envvar='BUILDTOOL_CONFIG',
              help='Path to buildtool YAML config')
@click.option('--log-level', default=None,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
              help='Set the logging level')
@click.option('--projects-dir', default=None, help='Directory containing projects')
@click.option('--target-dir', default=None, help='Directory for build outputs')
@click.option('--jobs', '-j', default=None, type=int, help='Max concurrent compilations')
@click.pass_context
def cli(ctx, config_path, log_level, projects_dir, target_dir, jobs):
    """Incremental build orchestrator"""
    global_cfg = load_global_config(config_path)
    apply_overrides(global_cfg, projects_dir, target_dir, jobs)

    level = log_level or global_cfg.logging.level
    setup_logging(getattr(logging, level.upper(), logging.INFO), global_cfg.logging.format)

    ctx.ensure_object(dict)
    ctx.obj['global_config'] = global_cfg
    ctx.obj['cli'] = BuildCLI(global_cfg)


@cli.command()
@click.pass_context
def build(ctx):
    """Compile every dirty project"""
    return_code = asyncio.run(ctx.obj['cli'].build())
    sys.exit(return_code or 0)


@cli.command()
@click.pass_context
def status(ctx):
    """Show clean and dirty projects without compiling"""
    return_code = asyncio.run(ctx.obj['cli'].status())
    sys.exit(return_code or 0)


@cli.command()
@click.pass_context
def files(ctx):
    """List source files tracked for change detection"""
    return_code = asyncio.run(ctx.obj['cli'].files())
    sys.exit(return_code or 0)


@cli.command()
@click.pass_context
def clean(ctx):
    """Delete build outputs and the fingerprint store"""
    return_code = asyncio.run(ctx.obj['cli'].clean())
    sys.exit(return_code or 0)


if __name__ == "__main__":
    cli()
