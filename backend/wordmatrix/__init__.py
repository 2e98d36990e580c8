from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

# Imported after the extensions above, which the services depend on.
from wordmatrix.services.games.orchestrator import Orchestrator  # noqa: E402

orchestrator = Orchestrator()


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    migrate.init_app(flask_app, db)

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or '*'
    CORS(flask_app, resources={r"/api/*": {"origins": allowed_origins}})

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from wordmatrix.main import main
    flask_app.register_blueprint(main)

    from wordmatrix.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api')

    from wordmatrix.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    orchestrator.init_app(flask_app)

    @click.command('db-reset')
    def db_reset_command():
        """Drops and recreates all room and result tables."""
        import wordmatrix.models  # noqa: F401
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            print('Database has been reset!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
