from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from wordmatrix import db, orchestrator
import time

main = Blueprint('main', __name__)

VERSION = '1.0.0'


@main.route('/')
def index():
    return jsonify({
        'status': 'Word Matrix Server Running',
        'version': VERSION,
        'timestamp': time.time(),
    })


@main.route('/health')
def health():
    dictionary = orchestrator.dictionary
    payload = {
        'dictionary': {
            'words': len(dictionary) if dictionary is not None else 0,
            'degraded': bool(dictionary is None or dictionary.degraded),
        },
        'timestamp': time.time(),
    }
    try:
        db.session.execute(text('SELECT 1'))
    except SQLAlchemyError:
        db.session.rollback()
        payload.update({'status': 'unavailable', 'database': 'unreachable'})
        return jsonify(payload), 503
    payload.update({'status': 'ok', 'database': 'ok'})
    return jsonify(payload)
