from schemas import ClientInfo


def test_full_user_agent_is_parsed():
    info = ClientInfo.from_user_agent("Parkinson-QA/36 (iPhone 5S; iPhone OS/9.2.1) StudySDK/7")
    assert info.app_name == "Parkinson-QA"
    assert info.app_version == 36
    assert info.device_name == "iPhone 5S"
    assert info.os_name == "iPhone OS"
    assert info.os_version == "9.2.1"
    assert info.sdk_name == "StudySDK"
    assert info.sdk_version == 7


def test_short_user_agent_is_parsed():
    info = ClientInfo.from_user_agent("Asthma/26")
    assert info.app_name == "Asthma"
    assert info.app_version == 26
    assert info.os_name is None
    assert info.sdk_version is None


def test_app_and_sdk_without_device():
    info = ClientInfo.from_user_agent("Cardio Health/4 StudySDK/3")
    assert info.app_name == "Cardio Health"
    assert info.app_version == 4
    assert info.sdk_name == "StudySDK"
    assert info.sdk_version == 3


def test_unrecognised_user_agent_is_unknown_client():
    for agent in (None, "", "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15"):
        info = ClientInfo.from_user_agent(agent)
        assert info == ClientInfo()
