"""Mock screening product API for E2E suite testing.

This mock server implements the REST endpoints the test data manager uses:
- POST /auth: Authenticate and get a bearer token
- POST/GET/DELETE /users, /applications, /sessions
- GET /sessions/<id> including co-applicant `children`
- GET /roles, /organizations, /workflows, /flag-collections

The mock server keeps in-memory state, records every request and can be told
to fail specific deletes so cleanup error handling can be exercised.
"""
from __future__ import annotations

import secrets
import uuid
from typing import Any, Dict, List, Tuple

from flask import Flask, jsonify, request

# Mock data storage
TOKENS: Dict[str, str] = {}  # token -> email
RECORDS: Dict[str, Dict[str, Dict[str, Any]]] = {
    "users": {},
    "applications": {},
    "sessions": {},
}
REFERENCE_DATA: Dict[str, List[Dict[str, Any]]] = {
    "roles": [],
    "organizations": [],
    "workflows": [],
    "flag-collections": [],
}
REQUEST_LOG: List[Tuple[str, str]] = []  # (method, path)
FAILING_DELETES: Dict[Tuple[str, str], int] = {}  # (collection, id) -> status

# Default test credentials
MOCK_ADMIN_EMAIL = "admin@example.test"
MOCK_ADMIN_PASSWORD = "mock-admin-password"

MUTABLE_COLLECTIONS = ("users", "applications", "sessions")


def reset_mock_state() -> None:
    """Reset all mock state (for test isolation)."""
    TOKENS.clear()
    for records in RECORDS.values():
        records.clear()
    for entities in REFERENCE_DATA.values():
        entities.clear()
    REQUEST_LOG.clear()
    FAILING_DELETES.clear()


def seed_reference_data() -> None:
    """Seed the lookup collections with a small, named data set."""
    REFERENCE_DATA["organizations"].extend([
        {"id": "org-1", "name": "Permissions Test Org"},
        {"id": "org-2", "name": "Verifast"},
    ])
    REFERENCE_DATA["roles"].extend([
        {"id": "role-1", "name": "Autotest - Empty role"},
        {"id": "role-2", "name": "Centralized Leasing"},
    ])
    REFERENCE_DATA["workflows"].extend([
        {"id": "wf-1", "name": "Autotest-Suite-Fin-Only"},
        {"id": "wf-2", "name": "Autotest-Id-Only"},
    ])
    REFERENCE_DATA["flag-collections"].extend([
        {"id": "fc-1", "name": "Default Flag Collection"},
    ])


def inject_delete_failure(collection: str, entity_id: str, status: int = 500) -> None:
    """Make DELETE /<collection>/<id> answer `status` once."""
    FAILING_DELETES[(collection, entity_id)] = status


def requests_made(method: str, prefix: str = "") -> List[str]:
    """Paths of recorded requests with the given method."""
    return [path for logged_method, path in REQUEST_LOG if logged_method == method and path.startswith(prefix)]


def _error(status: int, message: str):
    return jsonify({"message": message, "status": status}), status


def create_mock_api_app() -> Flask:
    """Create and configure the mock screening API Flask app."""
    app = Flask(__name__)
    app.config['TESTING'] = True

    @app.before_request
    def _log_request():
        REQUEST_LOG.append((request.method, request.path))

    def _authorized() -> bool:
        header = request.headers.get("Authorization", "")
        if not header.startswith("Bearer "):
            return False
        return header[len("Bearer "):] in TOKENS

    @app.route('/auth', methods=['POST'])
    def auth():
        data = request.get_json(silent=True) or {}
        if not data.get('uuid') or data.get('os') != 'web':
            return _error(422, "uuid and os=web are required")
        if data.get('email') != MOCK_ADMIN_EMAIL or data.get('password') != MOCK_ADMIN_PASSWORD:
            return _error(401, "Invalid credentials")

        token = secrets.token_hex(16)
        TOKENS[token] = data['email']
        return jsonify({"data": {"token": token, "email": data['email']}}), 200

    @app.route('/<collection>', methods=['POST'])
    def create(collection: str):
        if collection not in MUTABLE_COLLECTIONS:
            return _error(404, "Not Found")
        if not _authorized():
            return _error(401, "Unauthenticated")

        data = request.get_json(silent=True) or {}
        record = dict(data)
        record['id'] = str(uuid.uuid4())
        if collection == 'sessions':
            record.setdefault('children', [])
            parent_id = record.get('parent')
            if parent_id:
                parent = RECORDS['sessions'].get(parent_id)
                if parent is None:
                    return _error(422, f"Unknown parent session {parent_id}")
                parent['children'].append({"id": record['id']})
        RECORDS[collection][record['id']] = record
        return jsonify({"data": record}), 201

    @app.route('/<collection>', methods=['GET'])
    def list_collection(collection: str):
        if not _authorized():
            return _error(401, "Unauthenticated")
        if collection in RECORDS:
            return jsonify({"data": list(RECORDS[collection].values())}), 200
        if collection in REFERENCE_DATA:
            return jsonify({"data": list(REFERENCE_DATA[collection])}), 200
        return _error(404, "Not Found")

    @app.route('/<collection>/<entity_id>', methods=['GET'])
    def show(collection: str, entity_id: str):
        if not _authorized():
            return _error(401, "Unauthenticated")
        record = RECORDS.get(collection, {}).get(entity_id)
        if record is None:
            return _error(404, "Not Found")

        fields = request.args.get(f"fields[{collection[:-1]}]")
        if fields:
            wanted = {name.strip() for name in fields.split(',')}
            record = {key: value for key, value in record.items() if key in wanted}
        return jsonify({"data": record}), 200

    @app.route('/<collection>/<entity_id>', methods=['DELETE'])
    def delete(collection: str, entity_id: str):
        if collection not in MUTABLE_COLLECTIONS:
            return _error(404, "Not Found")
        if not _authorized():
            return _error(401, "Unauthenticated")

        failure = FAILING_DELETES.pop((collection, entity_id), None)
        if failure is not None:
            return _error(failure, "Injected failure")

        record = RECORDS[collection].pop(entity_id, None)
        if record is None:
            return _error(404, "Not Found")
        if collection == 'sessions' and record.get('parent'):
            parent = RECORDS['sessions'].get(record['parent'])
            if parent is not None:
                parent['children'] = [child for child in parent['children'] if child['id'] != entity_id]
        return '', 204

    return app
