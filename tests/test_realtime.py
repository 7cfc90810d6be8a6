from realtime import is_valid_room
from server import app


def test_room_names():
    assert is_valid_room("admin")
    assert is_valid_room("panel:4")
    assert not is_valid_room("panel:")
    assert not is_valid_room("everyone")
    assert not is_valid_room(None)


def test_join_ack_and_room_delivery(client):
    with client.websocket_connect("/api/ws") as socket:
        socket.send_json({"action": "join", "room": "admin"})
        assert socket.receive_json() == {"event": "joined", "room": "admin"}

        app.state.hub.emit("query:new", {"id": 7}, room="admin")
        assert socket.receive_json() == {"event": "query:new", "data": {"id": 7}}

        socket.send_json({"action": "leave", "room": "admin"})
        assert socket.receive_json() == {"event": "left", "room": "admin"}
        assert app.state.hub.room_size("admin") == 0


def test_malformed_frame_keeps_connection_open(client):
    with client.websocket_connect("/api/ws") as socket:
        socket.send_text("not json")
        socket.send_json({"action": "join", "room": "panel:3"})
        assert socket.receive_json() == {"event": "joined", "room": "panel:3"}
