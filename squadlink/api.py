#!/usr/bin/env python3
"""
squadlink API - Flask HTTP surface for the friend-relationship core.

Route handlers stay thin: they read the authenticated user, call one
service method and serialise its result.  Every relationship outcome that is
not a success is a :class:`~squadlink.errors.RelationshipError`, rendered by
one error handler as ``{"error": <code>, "detail": <message>}``.
"""

import argparse
import logging
import os
from functools import wraps
from typing import Optional

from colorama import Fore, init as colorama_init
from flask import Blueprint, Flask, current_app, g, jsonify, request, session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from . import __version__
from .config import Settings, setup_logging
from .database import create_db_engine, init_db, make_session_factory
from .errors import RelationshipError
from .openapi_spec import build_spec
from .repositories import ProfileRepository, RelationshipStore
from .services import (
    RelationshipView, RequestResolver, StatusAnnotator, filter_accepted,
)

api_logger = logging.getLogger('squadlink.api')

api = Blueprint('api', __name__, url_prefix='/api')

PATCH_ACTIONS = ('accept', 'decline')


def _services() -> dict:
    return current_app.extensions['squadlink']


def _bad_request(detail: str):
    return jsonify({'error': 'bad-request', 'detail': detail}), 400


def current_user_id() -> Optional[str]:
    """Return the authenticated profile id for this request, if any.

    The session/auth service stores ``user_id`` in the Flask session.  When
    ``SQUADLINK_TRUST_USER_HEADER`` is on, an upstream gateway may pass it
    in the ``X-User-Id`` header instead.
    """
    user_id = session.get('user_id')
    if not user_id and current_app.config.get('TRUST_USER_HEADER'):
        user_id = request.headers.get('X-User-Id', '').strip() or None
    return user_id


def require_login(f):
    """Decorator to require an authenticated user"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = current_user_id()
        if not user_id:
            return jsonify({'error': 'not-authenticated', 'detail': 'Not logged in'}), 401
        g.user_id = user_id
        return f(*args, **kwargs)
    return decorated_function


# ---------------------------------------------------------------------------
# Relationships API
# ---------------------------------------------------------------------------

@api.route('/relationships', methods=['POST'])
@require_login
def api_send_request():
    """Send a friend request.

    Request JSON:
      - ``target_id``: profile id of the user to befriend (required)
    """
    data = request.get_json(silent=True) or {}
    target = data.get('target_id')
    if not isinstance(target, str) or not target.strip():
        return _bad_request('target_id is required')
    edge = _services()['resolver'].send_request(g.user_id, target.strip())
    return jsonify({'edge': edge.to_dict()}), 201


@api.route('/relationships', methods=['GET'])
@require_login
def api_list_relationships():
    """Return the current user's accepted, incoming and outgoing buckets.

    Accepted friends are one list, online friends first; each profile carries
    its ``online`` flag.

    Query parameters:
      - ``as``:       only ``me`` is supported (default)
      - ``q``:        filter accepted friends by username / display name
      - ``presence``: ``online`` or ``offline`` to filter accepted friends
    """
    if request.args.get('as', 'me') != 'me':
        return _bad_request("only as=me is supported")
    query = request.args.get('q')
    presence = request.args.get('presence') or None
    dashboard = _services()['view'].dashboard(g.user_id)
    try:
        accepted = filter_accepted(dashboard['accepted'], query=query, presence=presence)
    except ValueError as e:
        return _bad_request(str(e))
    return jsonify({
        'accepted': [p.to_dict() for p in accepted.all],
        'incoming': [r.to_dict() for r in dashboard['incoming']],
        'outgoing': [r.to_dict() for r in dashboard['outgoing']],
        'counts': dashboard['counts'],
    })


@api.route('/relationships/stats')
@require_login
def api_relationship_stats():
    """Return derived counts: total/online/offline friends, incoming, outgoing."""
    return jsonify(_services()['view'].stats(g.user_id))


@api.route('/relationships/<edge_id>', methods=['GET'])
@require_login
def api_get_relationship(edge_id):
    """Return one edge; only its two parties can see it."""
    edge = _services()['resolver'].get_request(g.user_id, edge_id)
    return jsonify({'edge': edge.to_dict()})


@api.route('/relationships/<edge_id>', methods=['PATCH'])
@require_login
def api_resolve_relationship(edge_id):
    """Accept or decline a pending friend request.

    Request JSON:
      - ``action``: ``"accept"`` or ``"decline"`` (required)
    """
    data = request.get_json(silent=True) or {}
    action = data.get('action')
    if action not in PATCH_ACTIONS:
        return _bad_request('action must be "accept" or "decline"')
    resolver = _services()['resolver']
    if action == 'accept':
        edge = resolver.accept_request(g.user_id, edge_id)
    else:
        edge = resolver.decline_request(g.user_id, edge_id)
    return jsonify({'edge': edge.to_dict()})


@api.route('/relationships/<edge_id>', methods=['DELETE'])
@require_login
def api_cancel_relationship(edge_id):
    """Cancel a pending friend request the current user sent."""
    _services()['resolver'].cancel_request(g.user_id, edge_id)
    return '', 204


# ---------------------------------------------------------------------------
# User search and presence API
# ---------------------------------------------------------------------------

@api.route('/users/search')
@require_login
def api_search_users():
    """Search users by username, tagging each with its relation to the caller.

    Query parameters:
      - ``q``: search text; blank returns an empty list
    """
    query = request.args.get('q', '')
    results = _services()['annotator'].search(g.user_id, query)
    return jsonify([
        {'profile': profile.to_dict(), 'relation': relation.value}
        for profile, relation in results
    ])


@api.route('/presence', methods=['POST'])
@require_login
def api_presence():
    """Record a presence heartbeat for the current user."""
    if not _services()['profiles'].touch(g.user_id):
        return jsonify({'error': 'user-not-found', 'detail': 'No such user.'}), 404
    return jsonify({'success': True})


# ---------------------------------------------------------------------------
# Service endpoints
# ---------------------------------------------------------------------------

@api.route('/health')
def api_health():
    """Liveness plus a round trip to the database."""
    db = _services()['session_factory']()
    try:
        db.execute(text('SELECT 1'))
        database_ok = True
    except SQLAlchemyError as e:
        api_logger.warning('Health check database query failed: %s', e)
        database_ok = False
    finally:
        db.close()
    status_code = 200 if database_ok else 503
    return jsonify({'status': 'ok' if database_ok else 'degraded',
                    'database': database_ok,
                    'version': __version__}), status_code


@api.route('/openapi.json')
def api_openapi():
    return jsonify(build_spec(server_url=request.host_url.rstrip('/')))


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

def register_error_handlers(app: Flask) -> None:
    """Render every API failure as ``{"error": code, "detail": message}``."""

    @app.errorhandler(RelationshipError)
    def relationship_error(err):
        api_logger.debug('%s %s -> %s', request.method, request.path, err.code)
        return jsonify(err.to_dict()), err.status

    @app.errorhandler(HTTPException)
    def http_error(err):
        code = (err.name or 'error').lower().replace(' ', '-')
        return jsonify({'error': code, 'detail': err.description}), err.code

    @app.errorhandler(SQLAlchemyError)
    def database_error(err):
        api_logger.exception('Database error on %s %s', request.method, request.path)
        return jsonify({'error': 'server-error',
                        'detail': 'A database error occurred. Please try again.'}), 500


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None, session_factory=None) -> Flask:
    """Build the Flask application.

    Args:
        settings:        Runtime settings; read from the environment when
                         omitted.
        session_factory: SQLAlchemy session factory; built from
                         ``settings.database_url`` when omitted, creating
                         any missing tables.
    """
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)
    if session_factory is None:
        engine = create_db_engine(settings.database_url)
        if init_db(engine):
            api_logger.info('Database initialized successfully')
        else:
            api_logger.warning('Database initialization reported failure')
        session_factory = make_session_factory(engine)

    app = Flask(__name__)
    app.secret_key = settings.secret_key or os.urandom(24)
    app.config['TRUST_USER_HEADER'] = settings.trust_user_header

    store = RelationshipStore(session_factory)
    profiles = ProfileRepository(session_factory,
                                 online_threshold_minutes=settings.online_threshold_minutes)
    app.extensions['squadlink'] = {
        'session_factory': session_factory,
        'store': store,
        'profiles': profiles,
        'resolver': RequestResolver(store, profiles),
        'annotator': StatusAnnotator(store, profiles, search_limit=settings.search_limit),
        'view': RelationshipView(store, profiles),
    }
    app.register_blueprint(api)
    register_error_handlers(app)
    return app


def main():
    """Main entry point for the API server"""
    parser = argparse.ArgumentParser(description='squadlink relationship API')
    parser.add_argument('--host', default='127.0.0.1', help='Interface to bind (default: 127.0.0.1)')
    parser.add_argument('--port', type=int, default=5000, help='Port to listen on (default: 5000)')
    parser.add_argument('--debug', action='store_true', help='Run Flask in debug mode')
    args = parser.parse_args()
    colorama_init(autoreset=True)

    settings = Settings.from_env()
    setup_logging(settings.log_level)
    engine = create_db_engine(settings.database_url)
    if not init_db(engine):
        api_logger.error("Database initialization failed, not starting")
        print(f"{Fore.RED}Could not create tables on {engine.url.render_as_string(hide_password=True)}")
        return 1

    app = create_app(settings, make_session_factory(engine))
    print(f"{Fore.GREEN}squadlink API listening on http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=args.debug)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
