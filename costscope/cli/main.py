"""costscope command-line interface.

Commands:
    costscope run                                   Start the exporter.
    costscope version                               Print version and exit.
    costscope config                                Print the effective configuration as JSON.
    costscope pricing-key --region R --instance-type T
                                                    Print the Alibaba price table key of a node.

Configuration is read from ``COSTSCOPE_*`` environment variables.
"""

from __future__ import annotations

import asyncio
import json

import click

from costscope import __version__
from costscope.cloud.alibaba.keys import (
    ALIBABA_HOUR_PRICE_UNIT,
    SlimNode,
    SystemDisk,
    determine_key_for_pricing,
    get_instance_family,
)
from costscope.cloud.models import ProviderConfig
from costscope.cloud.provider import ConfigError
from costscope.config import load_config

# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
def cli() -> None:
    """costscope — Kubernetes cost and utilization exporter."""


# ---------------------------------------------------------------------------
# costscope run
# ---------------------------------------------------------------------------


@cli.command("run")
def cmd_run() -> None:
    """Run the exporter until SIGTERM or SIGINT."""
    from costscope.app import main

    asyncio.run(main())


# ---------------------------------------------------------------------------
# costscope version
# ---------------------------------------------------------------------------


@cli.command("version")
def cmd_version() -> None:
    """Print the costscope version and exit."""
    click.echo(f"costscope {__version__}")


# ---------------------------------------------------------------------------
# costscope config
# ---------------------------------------------------------------------------


@cli.command("config")
@click.option(
    "--with-pricing",
    is_flag=True,
    default=False,
    help="Include the custom pricing document (secrets redacted).",
)
def cmd_config(with_pricing: bool) -> None:
    """Print the effective configuration as JSON."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    data: dict[str, object] = dict(config.to_dict())
    if with_pricing:
        try:
            pricing = ProviderConfig(config.pricing.config_path).get_custom_pricing_data()
        except ConfigError as exc:
            raise click.ClickException(str(exc)) from exc
        data["customPricing"] = pricing.sanitize().model_dump(by_alias=True)
    click.echo(json.dumps(data, indent=2, sort_keys=True))


# ---------------------------------------------------------------------------
# costscope pricing-key
# ---------------------------------------------------------------------------


@cli.command("pricing-key")
@click.option("--region", required=True, help="Region ID, e.g. cn-hangzhou.")
@click.option("--instance-type", required=True, help="ECS instance type, e.g. ecs.g6.large.")
@click.option("--os", "os_type", default="linux", show_default=True, help="Node operating system.")
@click.option("--system-disk-category", default="", help="System disk category, e.g. cloud_essd.")
@click.option("--system-disk-size", default="", help="System disk size in GiB.")
@click.option("--system-disk-performance-level", default="", help="ESSD performance level, e.g. PL1.")
def cmd_pricing_key(
    region: str,
    instance_type: str,
    os_type: str,
    system_disk_category: str,
    system_disk_size: str,
    system_disk_performance_level: str,
) -> None:
    """Print the price table key a node with these attributes is cached under."""
    system_disk = None
    if system_disk_category:
        system_disk = SystemDisk(
            region_id=region,
            size_in_gib=system_disk_size,
            disk_category=system_disk_category,
            performance_level=system_disk_performance_level,
        )
    node = SlimNode(
        instance_type=instance_type,
        region_id=region,
        price_unit=ALIBABA_HOUR_PRICE_UNIT,
        os_type=os_type,
        instance_type_family=get_instance_family(instance_type),
        system_disk=system_disk,
    )
    click.echo(determine_key_for_pricing(node))


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    cli()
