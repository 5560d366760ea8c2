import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config, rng=None):
    """Build the Flask app and wire the game core into it.

    The room directory, match engine and summary emitter are created here
    and handed to the Socket.IO adapter; nothing else owns them.
    ``rng`` seeds first-turn selection (tests pass a seeded ``random.Random``).
    """
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    # app.logger is the "battleship" logger, parent of every module logger in the package
    flask_app.logger.setLevel(getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))

    allowed_origins = flask_app.config.get('CORS_ORIGINS') or []

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from battleship.main import main
    flask_app.register_blueprint(main)

    from battleship.api.matches import matches
    flask_app.register_blueprint(matches, url_prefix='/api')

    from battleship.services.games.directory import RoomDirectory
    from battleship.services.games.engine import MatchEngine
    from battleship.services.games.scheduler import start_room_sweeper
    from battleship.services.games.summary import MatchRecorder, SummaryEmitter
    from battleship.socketio_events import GameEvents, register_socketio_handlers

    recorder = MatchRecorder()
    events = GameEvents(
        directory=RoomDirectory(ttl=int(flask_app.config.get('ROOM_TTL_SEC', 3600))),
        engine=MatchEngine(rng=rng),
        emitter=SummaryEmitter(recorder),
        recorder=recorder,
    )
    flask_app.extensions['game_events'] = events
    register_socketio_handlers(events)
    start_room_sweeper(flask_app, events.directory)

    from battleship.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return {'success': False, 'message': 'Authentication required'}, 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            for username in ['captain1', 'captain2', 'captain3']:
                user = User(username=username)
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            click.echo('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
