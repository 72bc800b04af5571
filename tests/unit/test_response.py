"""Tests for response envelope classification."""
import pytest

from huobi_client.exceptions import ServerError
from huobi_client.rest.response import classify, is_error_response, parse_error_response


class TestClassify:

    def test_success_returns_payload_untouched(self):
        payload = [{'id': 1, 'type': 'spot'}]
        result = classify({'status': 'ok', 'data': payload})

        assert result.success
        assert result.data is payload

    def test_custom_payload_field(self):
        result = classify({'status': 'ok', 'ch': 'market.ethbtc.depth.step0', 'tick': {'bids': []}}, 'tick')
        assert result.data == {'bids': []}

    def test_whole_envelope(self):
        envelope = {'status': 'ok', 'data': 1}
        assert classify(envelope, None).data is envelope

    def test_envelope_without_status_is_success(self):
        assert classify({'data': 5}).data == 5

    def test_error_with_code_and_message(self):
        result = classify({'status': 'error', 'err-code': 'invalid-parameter', 'err-msg': 'bad size'})

        assert not result.success
        assert isinstance(result.error, ServerError)
        assert result.error.code == 'invalid-parameter'
        assert result.error.message == 'bad size'
        assert str(result.error) == 'invalid-parameter, bad size'

    def test_error_without_code_falls_back_to_body(self):
        body = {'status': 'error', 'something': 'else'}
        result = classify(body)

        assert result.error.code is None
        assert result.error.raw == body
        assert 'something' in result.error.message

    @pytest.mark.parametrize('body', ['not json object', 42, None, ['a']])
    def test_non_object_bodies_never_raise(self, body):
        result = classify(body)
        assert not result.success
        assert isinstance(result.error, ServerError)

    def test_unwrap_raises_stored_error(self):
        result = classify({'status': 'error', 'err-code': 'x', 'err-msg': 'y'})
        with pytest.raises(ServerError):
            result.unwrap()


class TestHelpers:

    def test_is_error_response(self):
        assert is_error_response({'status': 'error'})
        assert not is_error_response({'status': 'ok'})
        assert not is_error_response({'data': 1})
        assert not is_error_response('text')

    def test_parse_error_response_with_unserializable_body(self):
        error = parse_error_response({'status': 'error', 'value': object()})
        assert error.code is None
        assert 'status' in error.message
