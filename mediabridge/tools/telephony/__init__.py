from mediabridge.tools.telephony.end_call import END_CALL_ACTION, EndCallTool

__all__ = ["END_CALL_ACTION", "EndCallTool"]
