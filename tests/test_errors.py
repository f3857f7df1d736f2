"""
Tests for the standard error response shape.
"""
import logging

from growthkit.utils.errors import ErrorCode, bad_request, error_response, internal_error, not_found


class TestErrorResponse:

    def test_enum_code(self, app):
        response, status = not_found('Identity not found', ErrorCode.IDENTITY_NOT_FOUND)

        assert status == 404
        assert response.get_json() == {
            'error': {'message': 'Identity not found', 'code': 'IDENTITY_NOT_FOUND'}
        }

    def test_string_code_passes_through(self, app):
        response, status = error_response('Insufficient credits', 'INSUFFICIENT_CREDITS', 400, log_error=False)

        assert status == 400
        assert response.get_json()['error']['code'] == 'INSUFFICIENT_CREDITS'

    def test_bad_request_defaults(self, app):
        response, status = bad_request('limit must be an integer')

        assert status == 400
        assert response.get_json()['error']['code'] == 'INVALID_REQUEST'

    def test_server_errors_logged_at_error(self, app, caplog):
        with caplog.at_level(logging.WARNING, logger='growthkit.utils.errors'):
            response, status = internal_error(details={'step': 'commit'})

        assert status == 500
        assert response.get_json()['error']['code'] == 'INTERNAL_ERROR'
        assert [r.levelno for r in caplog.records] == [logging.ERROR]

    def test_client_errors_logged_at_warning(self, app, caplog):
        with caplog.at_level(logging.WARNING, logger='growthkit.utils.errors'):
            error_response('Nope', ErrorCode.INVALID_REQUEST, 400)

        assert [r.levelno for r in caplog.records] == [logging.WARNING]


class TestErrorCodes:

    def test_unknown_route(self, client):
        response = client.get('/api/v1/nowhere')

        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'NOT_FOUND'
