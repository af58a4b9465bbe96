import pytest

from conftest import TestConfig, failed, membership, ok, run, snapshot
from pursuit_client.client import ACTION_REJECTED_FALLBACK, RoomClient
from pursuit_client.errors import TERMINAL_SESSION_MESSAGE, ServerRejected, SessionMissing


def created(client, channel, **extra):
    channel.reply('create-room', membership(**extra))
    return run(client.create_room('  Host Player  '))


def test_create_room_stores_seat_and_marks_host(client, channel, store):
    result = created(client, channel)

    assert channel.sent_for('create-room') == [{'playerName': 'Host Player'}]
    assert result.room_code == 'ABC123'
    status = client.status
    assert status.online
    assert status.is_host
    assert status.room_code == 'ABC123'
    assert status.player_id == 'p1'
    assert status.binder_state == 'bound'
    assert status.address == '/?room=ABC123&name=Host+Player'
    record = store.read('ABC123')
    assert (record.session_token, record.player_id) == ('tok-1', 'p1')


def test_join_room_canonicalizes_code(client, channel, store):
    channel.reply('join-room', membership(player_id='p2', token='tok-2'))

    run(client.join_room(' abc123 ', 'Guest'))

    assert channel.sent_for('join-room') == [{'roomCode': 'ABC123', 'playerName': 'Guest'}]
    assert not client.status.is_host
    assert store.read('ABC123').session_token == 'tok-2'


def test_join_without_identity_in_ack_fails(client, channel, store):
    channel.reply('join-room', ok(roomCode='ABC123'))

    with pytest.raises(ServerRejected) as info:
        run(client.join_room('ABC123', 'Guest'))

    assert str(info.value) == 'Server did not return room identity.'
    assert client.status.error == 'Server did not return room identity.'
    assert store.read('ABC123') is None


def test_connection_error_is_reported_once_and_cleared(client, channel):
    channel.notify_error('websocket error')
    channel.notify_error('websocket error')

    expected = 'Unable to reach the server at http://test.local. websocket error'
    assert client.status.error == expected

    run(channel.reconnect('sid-2'))
    assert client.status.error is None


def test_non_connection_error_survives_reconnect(client, channel):
    client.board.set_error('Not your turn.')
    run(channel.reconnect('sid-2'))
    assert client.status.error == 'Not your turn.'


def test_action_rejected_push_sets_error_and_applies_snapshot(client, channel):
    created(client, channel)

    channel.push('action-rejected', {'reason': 'Not your turn.', 'snapshot': snapshot(4, current_index=1)})

    status = client.status
    assert status.error == 'Not your turn.'
    assert status.state_version == 4
    assert status.current_turn_player_id == 'p2'


def test_action_rejected_push_without_reason(client, channel):
    created(client, channel)
    channel.push('action-rejected', {})
    assert client.status.error == ACTION_REJECTED_FALLBACK


def test_out_of_order_snapshots_keep_newest(client, channel):
    created(client, channel)

    channel.push('room-snapshot', snapshot(3, current_index=1))
    channel.push('room-snapshot', snapshot(2, current_index=0))

    status = client.status
    assert status.state_version == 3
    assert status.current_turn_player_id == 'p2'
    assert not status.is_my_turn
    assert status.started


def test_malformed_snapshot_is_ignored(client, channel):
    created(client, channel)
    channel.push('room-snapshot', {'roomCode': 'ABC123', 'stateVersion': 'later'})
    assert client.status.state_version == 1


def test_pushes_for_another_room_are_ignored(client, channel):
    created(client, channel)

    channel.push('presence-updated', {'roomCode': 'ZZZ999', 'playersPresence': {
        'x': {'playerId': 'x', 'status': 'connected', 'connected': True},
    }})
    channel.push('host-updated', {'roomCode': 'ZZZ999', 'hostPlayerId': 'x'})

    assert 'x' not in client.status.presence
    assert client.status.host_player_id == 'p1'


def test_roster_and_start_pushes(client, channel):
    created(client, channel)
    players = [{'id': 'p1', 'name': 'Host Player', 'color': ''}, {'id': 'p2', 'name': 'Guest', 'color': ''}]

    channel.push('player-joined', {'roomCode': 'abc123', 'players': players, 'hostPlayerId': 'p1'})
    assert [p.id for p in client.status.players] == ['p1', 'p2']
    assert not client.status.started

    channel.push('game-started', {'roomCode': 'ABC123', 'players': players, 'hostPlayerId': 'p1'})
    assert client.status.started

    channel.push('player-color-updated', {'roomCode': 'ABC123', 'playerId': 'p2', 'color': 'green'})
    assert client.status.players[1].color == 'green'


def test_host_handover_push(client, channel):
    created(client, channel)
    channel.push('host-updated', {'roomCode': 'ABC123', 'hostPlayerId': 'p2'})
    assert not client.status.is_host
    assert client.status.host_player_id == 'p2'


def test_start_game_raises_version(client, channel):
    created(client, channel)
    channel.reply('start-game', ok(stateVersion=2))

    assert run(client.start_game()) == 2

    assert channel.sent_for('start-game') == [{'roomCode': 'ABC123', 'sessionToken': 'tok-1'}]
    assert client.status.started
    assert client.status.state_version == 2


def test_start_game_refusal_is_surfaced(client, channel):
    created(client, channel)
    channel.reply('start-game', failed('Only host can start the game.'))

    with pytest.raises(ServerRejected):
        run(client.start_game())

    assert client.status.error == 'Only host can start the game.'
    assert not client.status.started


def test_update_player_color_patches_local_roster(client, channel):
    created(client, channel)
    channel.reply('update-player-color', ok())

    run(client.update_player_color('purple'))

    assert channel.sent_for('update-player-color') == [
        {'roomCode': 'ABC123', 'sessionToken': 'tok-1', 'color': 'purple'},
    ]
    assert client.status.players[0].color == 'purple'


def test_operations_need_a_session(client):
    with pytest.raises(SessionMissing):
        run(client.start_game())
    with pytest.raises(SessionMissing):
        run(client.update_player_color('red'))
    with pytest.raises(SessionMissing):
        run(client.request_sync())


def test_optimistic_state_is_local_only(client, channel):
    created(client, channel)
    client.apply_local_game_state({'players': [{'id': 'p1'}, {'id': 'p2'}], 'currentPlayerIndex': 0})

    status = client.status
    assert status.is_my_turn
    assert status.state_version == 1
    assert channel.sent_for('submit-action') == []


def test_leave_room_notifies_server_and_forgets(client, channel, store):
    created(client, channel)
    channel.reply('leave-room', ok())

    run(client.leave_room())

    assert channel.sent_for('leave-room') == [{'roomCode': 'ABC123', 'sessionToken': 'tok-1'}]
    assert store.read('ABC123') is None
    status = client.status
    assert not status.online
    assert status.room_code is None
    assert status.binder_state == 'unbound'
    assert client.binder.session is None


def test_leave_room_still_forgets_when_server_refuses(client, channel, store):
    created(client, channel)
    channel.reply('leave-room', failed('Room not found.'))

    run(client.leave_room())

    assert store.read('ABC123') is None
    assert client.status.error is None


def test_leave_room_offline_skips_notify(client, channel, store):
    created(client, channel)
    run(channel.drop())

    run(client.leave_room())

    assert channel.sent_for('leave-room') == []
    assert store.read('ABC123') is None


def test_listeners_hear_changes_until_unsubscribed(client, channel):
    calls = []
    unsubscribe = client.subscribe(lambda: calls.append(client.status.state_version))

    created(client, channel)
    assert calls

    unsubscribe()
    seen = len(calls)
    channel.push('room-snapshot', snapshot(5))
    assert len(calls) == seen


def test_expired_grace_on_reload_clears_seat(store, channel):
    store.write('ABC123', 'tok-1', 'p1')
    client = RoomClient(store, channel=channel, config_class=TestConfig,
                        address='https://play.example.com/?room=ABC123')
    channel.reply('rejoin-room', failed('Reconnect grace period expired.'))

    assert not run(client.resume())

    assert store.read('ABC123') is None
    assert client.status.error == TERMINAL_SESSION_MESSAGE
    assert client.binder.session is None
    assert not client.status.online
