import json

from dmsg.http_message import MSG_ENTRY_SET, MSG_ENTRY_UPDATED, HTTPMessage


def test_str_format():
    msg = HTTPMessage(message="wrote a new entry", code=200)
    assert str(msg) == "status code: 200. message: wrote a new entry"


def test_to_dict_key_order():
    msg = HTTPMessage(message="entry of public key is not found", code=404)
    assert list(msg.to_dict()) == ["message", "code"]
    assert msg.to_dict()["code"] == 404


def test_round_trip_through_json():
    for msg in (MSG_ENTRY_SET, MSG_ENTRY_UPDATED, HTTPMessage(message="invalid signature", code=401)):
        restored = HTTPMessage.from_dict(json.loads(json.dumps(msg.to_dict())))
        assert restored == msg


def test_from_dict_missing_fields_default():
    msg = HTTPMessage.from_dict({"message": "error bad input"})
    assert msg.to_dict() == {"message": "error bad input", "code": 0}


def test_constants_messages():
    assert MSG_ENTRY_SET.to_dict() == {"message": "wrote a new entry", "code": 200}
    assert MSG_ENTRY_UPDATED.to_dict() == {"message": "wrote new entry iteration", "code": 200}