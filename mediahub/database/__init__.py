from .base import AuthProvider, MediaStore, ChangeChannel, ChannelStatus
