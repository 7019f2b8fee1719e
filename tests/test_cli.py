import json
import logging

import numpy as np
import pytest

from iq_clip_scan import ScanConfig, build_parser, main, run_scan
from iq_sample_source import SampleSource


def test_full_scan_prints_report(write_capture, capsys):
    path = write_capture([10, 20, 0, 255])
    assert main([str(path), '2']) == 0

    out = capsys.readouterr().out
    assert f'File: {path}' in out
    assert 'Total I/Q pairs processed: 2' in out
    assert 'Clipping percentage: 50.000000%' in out
    assert 'second      0: 1 clipped samples' in out


def test_breakout_skips_full_report(write_capture, capsys):
    data = np.full(12, 100, dtype=np.uint8)
    data[4:8] = 255
    path = write_capture(data)
    assert main([str(path), '2', '--break_out', '1']) == 0

    out = capsys.readouterr().out
    assert '--- Detailed Clipping for Second 1 ---' in out
    assert 'second      1: 4 clipped samples' in out
    assert 'Clipping per second' not in out


def test_breakout_out_of_range_fails(write_capture, capsys, caplog):
    path = write_capture(range(10))
    with caplog.at_level(logging.ERROR):
        assert main([str(path), '2', '--break_out', '5']) == 1

    assert capsys.readouterr().out == ''
    assert 'max duration: 2.50 seconds' in caplog.text


def test_missing_file_fails(tmp_path, capsys, caplog):
    with caplog.at_level(logging.ERROR):
        assert main([str(tmp_path / 'nope.iq'), '2']) == 1
    assert capsys.readouterr().out == ''
    assert 'Error opening file' in caplog.text


@pytest.mark.parametrize('argv', [
    ['capture.iq'],
    ['capture.iq', 'fast'],
    ['capture.iq', '0'],
    ['capture.iq', '-5'],
    ['capture.iq', 'nan'],
    ['capture.iq', '2', '--break_out', 'x'],
    ['capture.iq', '2', '--break_out', '-1'],
    ['capture.iq', '2', '--output_localtime', 'maybe'],
    ['capture.iq', '2', '--epoch_UTC', '99999999999999'],
    ['capture.iq', '2', '--epoch_UTC', 'noon'],
    ['capture.iq', '2', '--chunk-size', '3'],
    ['capture.iq', '2', '--bogus'],
])
def test_argument_errors_exit_nonzero(argv, capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    assert excinfo.value.code != 0
    assert 'usage' in capsys.readouterr().err


def test_parser_defaults():
    args = build_parser().parse_args(['capture.iq', '2.4e6'])
    assert args.sample_rate == 2.4e6
    assert args.break_out is None
    assert args.epoch_UTC is None
    assert args.output_localtime is False


def test_output_localtime_flag():
    args = build_parser().parse_args(
        ['capture.iq', '1000', '--epoch_UTC', '1748786700', '--output_localtime', 'TRUE'])
    assert args.output_localtime is True
    assert args.epoch_UTC == 1748786700


def test_epoch_labels_in_report(write_capture, capsys):
    path = write_capture([0, 0, 7, 7, 255, 7])
    assert main([str(path), '2', '--epoch_UTC', '1748786700']) == 0

    out = capsys.readouterr().out
    assert 'Sunday, June  1, 2025 at 14:05 UTC' in out
    assert '14:05:00: 1 clipped samples' in out
    assert '14:05:01: 1 clipped samples' in out


def test_json_output(write_capture, tmp_path):
    path = write_capture([10, 20, 0, 255])
    json_path = tmp_path / 'metrics.json'
    assert main([str(path), '2', '--json', str(json_path)]) == 0

    data = json.loads(json_path.read_text())
    assert data['analysis_config']['mode'] == 'full'
    assert data['metrics']['total_pairs'] == 2
    assert data['metrics']['clipping']['i_low'] == 1


def test_run_scan_with_small_chunks(write_capture):
    path = write_capture(np.zeros(40, dtype=np.uint8))
    lines = run_scan(ScanConfig(filepath=path, sample_rate=10, chunk_size=6))
    assert 'Total I/Q pairs processed: 20' in lines
    assert 'second      1: 10 clipped samples' in lines


def test_out_of_range_epoch_rejected_before_reading(write_capture, monkeypatch, capsys):
    path = write_capture([0, 0])

    def _no_open(*args, **kwargs):
        raise AssertionError('capture opened')
    monkeypatch.setattr(SampleSource, 'open', _no_open)

    with pytest.raises(SystemExit) as excinfo:
        main([str(path), '2', '--epoch_UTC', '99999999999999'])
    assert excinfo.value.code == 2
    assert 'outside the representable date range' in capsys.readouterr().err


def test_successful_run_logs_nothing_below_warning(write_capture, caplog):
    path = write_capture([10, 20, 0, 255])
    assert main([str(path), '2']) == 0
    assert not [r for r in caplog.records if r.levelno < logging.WARNING]


def test_verbose_enables_debug_logging(write_capture, caplog):
    path = write_capture([10, 20, 0, 255])
    assert main([str(path), '2', '-v']) == 0
    assert any(r.levelno == logging.INFO and 'Processing' in r.getMessage() for r in caplog.records)
