from flask import Blueprint, jsonify, request
from wordmatrix import orchestrator
from wordmatrix.errors import GameError, NotFound


rooms = Blueprint('rooms', __name__)


@rooms.errorhandler(GameError)
def handle_game_error(exc):
    return jsonify({'error': exc.message, 'code': exc.code}), exc.status


@rooms.route('/rooms', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    created = orchestrator.create_room(
        mode=data.get('mode'),
        rounds=data.get('rounds'),
        duration=data.get('roundDuration'),
    )
    return jsonify(created), 201


@rooms.route('/rooms/<string:room_code>', methods=['GET'])
def get_room(room_code):
    try:
        return jsonify(orchestrator.room_config(room_code))
    except NotFound:
        return jsonify({'exists': False, 'error': 'Room not found'}), 404


@rooms.route('/rooms/<string:room_code>/leaderboard', methods=['GET'])
def get_leaderboard(room_code):
    return jsonify({'top10': orchestrator.leaderboard(room_code)})
