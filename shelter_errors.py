'''
error and warning types raised by the analysis
'''
from dataclasses import dataclass


class InsufficientDataError(ValueError):
    '''a statistical test was asked to run on too little data'''


class ExclusionPolicyWarning(UserWarning):
    '''an exclusion value does not appear anywhere in the data'''


@dataclass(frozen = True)
class ParseIssue:
    record_id: str
    field: str
    raw_value: str

    def to_dict(self) -> dict:
        return {'record_id': self.record_id, 'field': self.field, 'raw_value': self.raw_value}
