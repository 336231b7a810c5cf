"""Tests for the marketplace RPC client."""

import json
import uuid
from unittest.mock import MagicMock

import pytest
import requests

from rpc import (
    MarketplaceRPC,
    RPCMethod,
    AuthenticationError,
    ProcedureError,
    ServerConnectionError
)

def response(status_code=200, payload=None, text=None):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.reason = 'Reason'
    if payload is not None:
        resp.json.return_value = payload
        resp.text = json.dumps(payload)
    else:
        resp.json.side_effect = ValueError("No JSON object could be decoded")
        resp.text = text or ''
    resp.content = (text or '').encode()
    return resp

@pytest.fixture
def client():
    rpc = MarketplaceRPC('http://api.example.com/', token='tok')
    rpc.session = MagicMock()
    rpc.session.headers = {}
    return rpc

def test_token_header():
    rpc = MarketplaceRPC('http://api.example.com', token='abc')
    assert rpc.session.headers['authorization'] == 'Bearer abc'
    rpc.set_token(None)
    assert 'authorization' not in rpc.session.headers

def test_descriptor_on_class_returns_itself():
    assert isinstance(MarketplaceRPC.get_order, RPCMethod)
    assert MarketplaceRPC.get_unread_count.procedure == 'notifications.getUnreadCount'

def test_procedure_call_posts_json(client):
    order_id = uuid.uuid4()
    client.session.request.return_value = response(payload={'id': str(order_id)})

    result = client.get_order(order_id=order_id, note=None)

    assert result == {'id': str(order_id)}
    method, url = client.session.request.call_args.args
    assert (method, url) == ('POST', 'http://api.example.com/rpc/orders.get')
    assert json.loads(client.session.request.call_args.kwargs['data']) == {'order_id': str(order_id)}
    assert client.session.request.call_args.kwargs['timeout'] == 10

def test_unauthorized(client):
    client.session.request.return_value = response(401, {'detail': 'Session has expired'})

    with pytest.raises(AuthenticationError):
        client.get_me()

def test_procedure_error_carries_detail(client):
    client.session.request.return_value = response(404, {'detail': 'Order 1 not found'})

    with pytest.raises(ProcedureError) as exc_info:
        client.get_order(order_id='1')

    assert exc_info.value.code == 404
    assert exc_info.value.procedure == 'orders.get'
    assert exc_info.value.detail == 'Order 1 not found'
    assert 'Not found' in str(exc_info.value)

def test_validation_error_detail_is_kept(client):
    detail = [{'loc': ['body', 'reason'], 'msg': 'Field required'}]
    client.session.request.return_value = response(422, {'detail': detail})

    with pytest.raises(ProcedureError) as exc_info:
        client.request_return(order_id='1')

    assert exc_info.value.code == 422
    assert exc_info.value.detail == detail

def test_non_json_error_body(client):
    client.session.request.return_value = response(502, text='Bad Gateway')

    with pytest.raises(ProcedureError) as exc_info:
        client.browse_listings()

    assert exc_info.value.detail == 'Bad Gateway'

def test_non_json_success_body(client):
    client.session.request.return_value = response(200, text='<html>')

    with pytest.raises(ServerConnectionError):
        client.browse_listings()

@pytest.mark.parametrize('error', [
    requests.exceptions.Timeout(),
    requests.exceptions.ConnectionError(),
    requests.exceptions.TooManyRedirects()
])
def test_transport_errors(client, error):
    client.session.request.side_effect = error

    with pytest.raises(ServerConnectionError):
        client.get_unread_count()

def test_download(client):
    client.session.request.return_value = response(200, text='day,order_count\n')

    content = client.download('/reports/sales_summary', format='csv', start=None)

    assert content == b'day,order_count\n'
    method, url = client.session.request.call_args.args
    assert (method, url) == ('GET', 'http://api.example.com/reports/sales_summary')
    assert client.session.request.call_args.kwargs['params'] == {'format': 'csv'}
