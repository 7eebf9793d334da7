"""Exceptions raised by the merge pipeline."""


class EditMergeError(Exception): pass
class MergeServiceError(EditMergeError): pass
class EditorNotReadyError(EditMergeError): pass
class CancelledError(EditMergeError): pass
