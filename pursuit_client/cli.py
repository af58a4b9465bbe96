"""Command-line front end: one room operation per invocation."""
import asyncio
import logging

import click

from . import create_client
from .config import Config
from .errors import SessionError


def _config_for(server, context, database):
    overrides = {}
    if server:
        overrides['SOCKET_URL'] = server
    if context:
        overrides['CONTEXT_ID'] = context
    if database:
        overrides['SESSION_DATABASE_URL'] = database
    return type('CliConfig', (Config,), overrides)


def _echo_status(client):
    status = client.status
    click.echo(f"room:    {status.room_code or '-'} (state={status.binder_state}, version={status.state_version})")
    click.echo(f"player:  {status.player_id or '-'}{' [host]' if status.is_host else ''}")
    for player in status.players:
        presence = status.presence.get(player.id)
        click.echo(f"  - {player.name or player.id} {player.color or ''} {presence.status.value if presence else ''}".rstrip())
    if status.address:
        click.echo(f"address: {status.address}")
    if status.error:
        click.echo(f"error:   {status.error}", err=True)


def _run(ctx, operation, address=None):
    async def runner():
        client = create_client(ctx.obj['config'], address=address)
        await client.channel.connect()
        try:
            await operation(client)
            _echo_status(client)
        finally:
            await client.channel.disconnect()
    try:
        asyncio.run(runner())
    except SessionError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
@click.option('--server', envvar='SOCKET_URL', help='Socket.IO server URL.')
@click.option('--context', envvar='CONTEXT_ID', help='Client context (tab) the seat is stored under.')
@click.option('--database', envvar='SESSION_DATABASE_URL', help='Seat store database URL.')
@click.option('--verbose', is_flag=True, help='Log session activity.')
@click.pass_context
def cli(ctx, server, context, database, verbose):
    """Room session client for Joker Pursuit."""
    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING)
    ctx.ensure_object(dict)
    ctx.obj['config'] = _config_for(server, context, database)


@cli.command('create')
@click.argument('player_name')
@click.pass_context
def create_command(ctx, player_name):
    """Create a room and take the host seat."""
    _run(ctx, lambda client: client.create_room(player_name))


@cli.command('join')
@click.argument('room_code')
@click.argument('player_name')
@click.pass_context
def join_command(ctx, room_code, player_name):
    """Join an open room by code."""
    _run(ctx, lambda client: client.join_room(room_code, player_name))


@cli.command('resume')
@click.argument('address')
@click.pass_context
def resume_command(ctx, address):
    """Rebind the stored seat for the room named in ADDRESS."""
    async def operation(client):
        if not await client.resume(address):
            click.echo('No seat restored; join the room again.', err=True)
    _run(ctx, operation, address=address)


@cli.command('leave')
@click.argument('room_code')
@click.pass_context
def leave_command(ctx, room_code):
    """Give up the stored seat in ROOM_CODE."""
    async def operation(client):
        await client.resume(f'/?room={room_code}')
        await client.leave_room()
    _run(ctx, operation)
