"""Serial port command implementations."""

import click

from faderctl.transport import SerialTransport


@click.group(name="ports")
def ports_group():
    """Serial port commands."""
    pass


@ports_group.command(name="list")
@click.option("--detailed", is_flag=True, help="Show description and hardware id")
def list_ports(detailed: bool):
    """List available serial ports."""
    ports = SerialTransport.list_ports()

    click.echo("Serial Ports:\n")
    if not ports:
        click.echo("  No serial ports found.")
        return

    for i, port in enumerate(ports):
        click.echo(f"  [{i}] {port['device']}")
        if detailed:
            click.echo(f"      Description: {port['description']}")
            click.echo(f"      HWID: {port['hwid']}")
