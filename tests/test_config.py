"""Tests for settings loading."""

import pytest

from config import SettingsError, load_settings_conf

def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.delenv('FREELANCE_DB_URL', raising=False)
    monkeypatch.delenv('FREELANCE_JWT_SECRET', raising=False)
    
    settings = load_settings_conf(str(tmp_path))
    
    assert settings['api_port'] == 5001
    assert settings['jwt_algorithm'] == 'HS256'
    assert settings['db_url'].startswith('postgresql://')

def test_file_and_env_overrides(tmp_path, monkeypatch):
    (tmp_path / 'settings.conf').write_text(
        "[DEFAULT]\n"
        "api_port = 8080\n"
        "jwt_secret = from-file\n"
    )
    monkeypatch.setenv('FREELANCE_JWT_SECRET', 'from-env')
    
    settings = load_settings_conf(str(tmp_path))
    
    assert settings['api_port'] == 8080
    assert settings['jwt_secret'] == 'from-env'

def test_invalid_values(tmp_path):
    (tmp_path / 'settings.conf').write_text(
        "[DEFAULT]\n"
        "api_port = eighty\n"
        "jwt_algorithm = RS256\n"
    )
    
    with pytest.raises(SettingsError) as exc_info:
        load_settings_conf(str(tmp_path))
        
    message = str(exc_info.value)
    assert 'api_port' in message
    assert 'jwt_algorithm' in message

def test_pool_bounds(tmp_path):
    (tmp_path / 'settings.conf').write_text(
        "[DEFAULT]\n"
        "db_min_pool_size = 10\n"
        "db_max_pool_size = 5\n"
    )
    with pytest.raises(SettingsError, match="db_min_pool_size"):
        load_settings_conf(str(tmp_path))
