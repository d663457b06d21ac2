import json
import logging
from unittest.mock import Mock

from app.crosscutting.logging import (
    SecretMasker, StructuredFormatter, CorrelationContext,
    setup_logging, get_logger, log_with_fields, log_job_start, log_error,
    job_id_var, stage_var,
)


def make_record(message, fields=None):
    record = logging.LogRecord('app.test', logging.INFO, __file__, 10, message, None, None)
    if fields is not None:
        record.fields = fields
    return record


class TestSecretMasker:
    """Tests for secret masking functionality."""

    def setup_method(self):
        """Set up test fixtures."""
        self.masker = SecretMasker()

    def test_mask_api_token(self):
        masked = self.masker.mask_secrets("token: abc123def456ghi789")

        assert masked == "token: abc1**********i789"

    def test_mask_refresh_token(self):
        masked = self.masker.mask_secrets("refresh_token=abcdefghijklmnop")

        assert "abcdefghijklmnop" not in masked
        assert masked.startswith("refresh_token: abcd")

    def test_short_values_are_left_alone(self):
        assert self.masker.mask_secrets("token: abc") == "token: abc"

    def test_empty_text(self):
        assert self.masker.mask_secrets("") == ""

    def test_mask_bearer_header(self):
        masked = self.masker.mask_secrets("sent Bearer eyJhbGciOiJIUzI1NiJ9.payload to tidal")

        assert "eyJhbGciOiJIUzI1NiJ9.payload" not in masked
        assert masked.startswith("sent Bearer eyJh")
        assert masked.endswith(" to tidal")

    def test_mask_dict_masks_credential_keys(self):
        masked = self.masker.mask_dict({'access_token': 'secret_token_12345', 'provider': 'tidal'})

        assert masked == {'access_token': 'secr**********2345', 'provider': 'tidal'}

    def test_mask_dict_recurses(self):
        data = {
            'note': 'auth=abcdefghijklmnopqrstu',
            'nested': {'line': 'secret: 0123456789abcdef'},
            'items': ['key: zzzzzzzzzzzzzz', 3],
            'count': 2,
        }

        masked = self.masker.mask_dict(data)

        assert 'abcdefghijklmnopqrstu' not in masked['note']
        assert '0123456789abcdef' not in masked['nested']['line']
        assert 'zzzzzzzzzzzzzz' not in masked['items'][0]
        assert masked['items'][1] == 3
        assert masked['count'] == 2


class TestStructuredFormatter:
    """Tests for the JSON formatter."""

    def setup_method(self):
        self.formatter = StructuredFormatter()

    def test_format_basic_record(self):
        entry = json.loads(self.formatter.format(make_record("Matched 3 tracks")))

        assert entry['level'] == 'INFO'
        assert entry['logger'] == 'app.test'
        assert entry['message'] == "Matched 3 tracks"
        assert entry['ts'].endswith('Z')
        assert 'jobId' not in entry

    def test_format_includes_correlation(self):
        with CorrelationContext(job_id='job-1', playlist_id='pl-1', stage='matching'):
            entry = json.loads(self.formatter.format(make_record("working")))

        assert entry['jobId'] == 'job-1'
        assert entry['playlistId'] == 'pl-1'
        assert entry['stage'] == 'matching'

    def test_format_masks_message_and_fields(self):
        record = make_record("token: abc123def456ghi789", fields={'detail': 'secret=abcdefghijklmnop'})

        entry = json.loads(self.formatter.format(record))

        assert 'abc123def456ghi789' not in entry['message']
        assert 'abcdefghijklmnop' not in entry['fields']['detail']


class TestCorrelationContext:

    def test_values_reset_on_exit(self):
        with CorrelationContext(job_id='outer'):
            with CorrelationContext(stage='writing'):
                assert job_id_var.get() == 'outer'
                assert stage_var.get() == 'writing'
            assert stage_var.get() is None
        assert job_id_var.get() is None

    def test_none_values_do_not_override(self):
        with CorrelationContext(job_id='outer'):
            with CorrelationContext(job_id=None, stage='scanning'):
                assert job_id_var.get() == 'outer'


class TestLogHelpers:

    def setup_method(self):
        self.logger = Mock(spec=logging.Logger)

    def test_log_with_fields_merges_kwargs(self):
        log_with_fields(self.logger, 'warning', 'slow', {'a': 1}, b=2)

        self.logger.log.assert_called_once_with(logging.WARNING, 'slow', extra={'fields': {'a': 1, 'b': 2}})

    def test_log_with_fields_without_fields(self):
        log_with_fields(self.logger, 'INFO', 'plain')

        self.logger.log.assert_called_once_with(logging.INFO, 'plain', extra=None)

    def test_log_job_start(self):
        log_job_start(self.logger, 'job-1', 'spotify', 'tidal', total_tracks=4)

        level, message = self.logger.log.call_args.args
        assert (level, message) == (logging.INFO, 'Job started')
        assert self.logger.log.call_args.kwargs['extra']['fields'] == {
            'source_provider': 'spotify', 'target_provider': 'tidal', 'total_tracks': 4,
        }

    def test_log_error(self):
        log_error(self.logger, 'Write failed', ValueError('bad batch'), chunk=2)

        fields = self.logger.log.call_args.kwargs['extra']['fields']
        assert fields == {'error_type': 'ValueError', 'error_message': 'bad batch', 'chunk': 2}


def test_setup_logging_installs_structured_handler(tmp_path):
    log_file = tmp_path / 'crossfade.log'

    logger = setup_logging('DEBUG', str(log_file))
    try:
        assert logger is get_logger()
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        assert all(isinstance(h.formatter, StructuredFormatter) for h in logger.handlers)
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
