from django.contrib import admin

from .models import ChatRoom
from .models import ChatRoomUser
from .models import Message


class ChatRoomUserInline(admin.TabularInline):
    model = ChatRoomUser
    extra = 0
    raw_id_fields = ("user",)


@admin.register(ChatRoom)
class ChatRoomAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "type", "created_by", "updated_at")
    list_filter = ("type",)
    search_fields = ("name",)
    inlines = [ChatRoomUserInline]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ("id", "sender", "receiver", "chat_room", "type", "is_read", "created_at")
    list_filter = ("type", "is_read")
    search_fields = ("content",)
    raw_id_fields = ("sender", "receiver", "chat_room")
