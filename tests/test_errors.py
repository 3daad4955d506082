from carv2.errors import CarError, CidTooLargeError, NotFoundError


def test_cid_too_large_message_contains_sizes():
    subject = CidTooLargeError(max_size=1413, current_size=1414)
    assert str(subject) == "cid size is larger than max allowed (1414 > 1413)"


def test_cid_too_large_keeps_sizes():
    subject = CidTooLargeError(1413, 1414)
    assert subject.max_size == 1413
    assert subject.current_size == 1414


def test_cid_too_large_is_car_error():
    subject = CidTooLargeError(2, 36)
    assert isinstance(subject, CarError)
    assert (subject.max_size, subject.current_size) == (2, 36)
    assert str(subject) == "cid size is larger than max allowed (36 > 2)"


def test_not_found_default_message():
    assert str(NotFoundError()) == "not found"


def test_not_found_is_lookup_error():
    subject = NotFoundError()
    assert isinstance(subject, LookupError)
    assert str(subject) == "not found"