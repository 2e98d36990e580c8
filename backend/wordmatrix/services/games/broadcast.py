NAMESPACE = '/ws'


def room_channel(room_code):
    return f"room:{(room_code or '').upper()}"


class Broadcaster:
    """Fans orchestrator events out to every session in a room."""

    def __init__(self, socketio, namespace=NAMESPACE):
        self.socketio = socketio
        self.namespace = namespace

    def publish(self, room_code, event, payload=None):
        self.socketio.emit(event, payload or {}, to=room_channel(room_code), namespace=self.namespace)
