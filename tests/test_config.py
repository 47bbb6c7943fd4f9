"""Tests for YAML configuration loading and validation."""
import os
from datetime import date

import pytest
import yaml

from surfmops.config import (
    ConfigError, ConfigWarning, MissingConfigError, load_config, parse_config,
)
from surfmops.model import Area, ProcessingMode, SystemType

BASE = {
    'date': '2020-05-05',
    'arp': {'lat': 41.297078, 'lon': 2.078464, 'alt': 4.0},
    'smr': {'sic': 7, 'positions': {7: [-410.0, 1205.0, 32.0]}},
    'mlat': {'sic': 107},
    'adsb': {'sic': 219},
}


def with_(**overrides):
    data = dict(BASE)
    data.update(overrides)
    return data


@pytest.fixture
def config_file(tmp_path):
    def write(data):
        path = tmp_path / 'surfmops.yaml'
        path.write_text(yaml.safe_dump(data), encoding='utf-8')
        return str(path)
    return write


class TestMandatory:

    def test_minimal(self):
        config = parse_config(BASE)
        assert config.date == date(2020, 5, 5)
        assert config.arp.lat == pytest.approx(41.297078)
        assert config.sics() == {SystemType.SMR: 7, SystemType.MLAT: 107,
                                 SystemType.ADSB: 219}
        assert config.smr_positions == {7: (-410.0, 1205.0, 32.0)}
        assert config.mode is ProcessingMode.COMPARATIVE
        assert config.dgps is None

    @pytest.mark.parametrize('missing', ['date', 'arp', 'smr', 'mlat', 'adsb'])
    def test_missing_value(self, missing):
        data = dict(BASE)
        del data[missing]
        with pytest.raises(MissingConfigError):
            parse_config(data)

    def test_sic_out_of_range(self):
        with pytest.raises(ConfigError):
            parse_config(with_(mlat={'sic': 300}))

    def test_bad_date(self):
        with pytest.raises(ConfigError):
            parse_config(with_(date='fifth of may'))

    def test_not_a_mapping(self):
        with pytest.raises(ConfigError):
            parse_config(['date', '2020-05-05'])


class TestOptional:

    def test_evaluation_periods(self):
        config = parse_config(with_(mops={
            'ed116': {'update_rate': 2.0},
            'silence_period': 8,
            'pd_period': {'taxiway': 3.0},
        }))
        periods = config.evaluation_periods()
        assert periods.update_period(SystemType.SMR) == pytest.approx(0.5)
        assert periods.update_period(SystemType.MLAT) == pytest.approx(1.0)
        assert periods.silence_period == 8.0
        assert periods.pd_period(Area.TAXIWAY) == 3.0
        assert periods.pd_period(Area.RUNWAY) == 1.0

    def test_invalid_values_fall_back(self):
        with pytest.warns(ConfigWarning):
            config = parse_config(with_(mops={'ed117': {'update_rate': -1},
                                              'pd_period': {'runway': 'fast'}}))
        assert config.ed117_update_rate == 1.0
        assert config.pd_periods[Area.RUNWAY] == 1.0

    def test_update_rate_per_area(self):
        config = parse_config(with_(mops={'ed117': {'update_rate': {
            'default': 0.5, 'runway': 2.0, 'Stand': 0.2}}}))
        periods = config.evaluation_periods()
        assert periods.update_period(SystemType.MLAT, Area.RUNWAY) == pytest.approx(0.5)
        assert periods.update_period(SystemType.ADSB, Area.STAND) == pytest.approx(5.0)
        assert periods.update_period(SystemType.MLAT, Area.APRON) == pytest.approx(2.0)
        assert periods.update_period(SystemType.SMR, Area.RUNWAY) == pytest.approx(1.0)

    def test_update_rate_unknown_area(self):
        with pytest.warns(ConfigWarning):
            config = parse_config(with_(mops={'ed116': {'update_rate': {'runwy': 2.0}}}))
        assert config.ed116_area_update_rates == {}

    def test_invalid_mode(self):
        with pytest.warns(ConfigWarning):
            config = parse_config(with_(mode='sideways'))
        assert config.mode is ProcessingMode.COMPARATIVE

    def test_reference_mode_needs_dgps(self):
        with pytest.raises(MissingConfigError):
            parse_config(with_(mode='reference'))


class TestDgps:

    def test_section(self):
        config = parse_config(with_(dgps={'mode_s': '3C6586', 'mode_3a': '7000',
                                          'ident': ' FOLLOW1 ', 'tod_offset': 2.5}))
        assert config.mode is ProcessingMode.REFERENCE
        assert config.dgps.mode_s == 0x3C6586
        assert config.dgps.mode_3a == 0o7000
        assert config.dgps.ident == 'FOLLOW1'
        assert config.dgps.tod_offset == 2.5

    def test_comparative_mode_kept(self):
        config = parse_config(with_(mode='comparative', dgps={'mode_s': 'ABCDEF'}))
        assert config.mode is ProcessingMode.COMPARATIVE

    def test_mode_s_mandatory(self):
        with pytest.raises(MissingConfigError):
            parse_config(with_(dgps={'ident': 'FOLLOW1'}))

    def test_unquoted_mode_s_is_hexadecimal(self):
        config = parse_config(with_(dgps={'mode_s': yaml.safe_load('400123')}))
        assert config.dgps.mode_s == 0x400123

    def test_unquoted_mode_3a_is_octal(self):
        config = parse_config(with_(dgps={'mode_s': 'ABCDEF', 'mode_3a': yaml.safe_load('7000')}))
        assert config.dgps.mode_3a == 0o7000

    def test_mode_s_invalid(self):
        with pytest.raises(ConfigError):
            parse_config(with_(dgps={'mode_s': 'XYZ'}))

    def test_tod_offset_out_of_range(self):
        with pytest.warns(ConfigWarning):
            config = parse_config(with_(dgps={'mode_s': 1, 'tod_offset': 90000}))
        assert config.dgps.tod_offset == 0.0


class TestAerodromeAreas:

    RUNWAY = {'area': 'runway', 'name': '07L/25R',
              'polygon': [[0, 0], [3000, 0], [3000, 60], [0, 60]]}

    def test_valid(self):
        config = parse_config(with_(aerodrome={'areas': [self.RUNWAY]}))
        assert config.areas == [self.RUNWAY]

    @pytest.mark.parametrize('entry', [
        {'area': 'runwy', 'polygon': [[0, 0], [1, 0], [0, 1]]},
        {'area': 'apron', 'polygon': [[0, 0], [1, 0]]},
        {'area': 'apron', 'polygon': [[0, 0], [1, 'x'], [0, 1]]},
        {'area': 'apron'},
        {'polygon': [[0, 0], [1, 0], [0, 1]]},
        'runway',
    ])
    def test_invalid(self, entry):
        with pytest.raises(ConfigError):
            parse_config(with_(aerodrome={'areas': [self.RUNWAY, entry]}))


class TestLoadConfig:

    def test_relative_paths(self, config_file, tmp_path):
        path = config_file(with_(excluded_addresses='excluded.txt',
                                 dgps={'mode_s': '3C6586', 'file': 'dgps.csv'}))
        config = load_config(path)
        assert config.excluded_addresses == os.path.join(str(tmp_path), 'excluded.txt')
        assert config.dgps.file == os.path.join(str(tmp_path), 'dgps.csv')

    def test_missing_file(self, tmp_path):
        with pytest.raises(MissingConfigError):
            load_config(str(tmp_path / 'absent.yaml'))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'broken.yaml'
        path.write_text('date: [2020-05-05\n', encoding='utf-8')
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_logging_level(self, config_file):
        config = load_config(config_file(with_(logging={'level': 'debug'})))
        assert config.logging.level == 'DEBUG'
