"""
Host notifications.
Lets the host know when channel data changed after a reload.
"""
import logging

logger = logging.getLogger(__name__)


class HostClient:
    """
    Receiver of reload notifications.

    The default implementation only logs and counts; an integration
    overrides the trigger_* methods to push updates to its clients.
    """

    def __init__(self):
        self.update_counts = {
            "channels": 0,
            "channel_groups": 0,
            "providers": 0,
            "recordings": 0,
        }

    def trigger_channel_update(self):
        self.update_counts["channels"] += 1
        logger.debug("Channel update triggered")

    def trigger_channel_groups_update(self):
        self.update_counts["channel_groups"] += 1
        logger.debug("Channel groups update triggered")

    def trigger_providers_update(self):
        self.update_counts["providers"] += 1
        logger.debug("Providers update triggered")

    def trigger_recording_update(self):
        self.update_counts["recordings"] += 1
        logger.debug("Recording update triggered")
