from rest_framework import serializers


class StepActionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=["start", "next", "back"], default="next")
    state = serializers.DictField(required=False, default=dict)
    responses = serializers.DictField(child=serializers.JSONField(), required=False, default=dict)

    def validate_state(self, value):
        responses = value.get("responses")
        if responses is not None and not isinstance(responses, dict):
            raise serializers.ValidationError("state.responses must be an object")
        return value


class FlowSummarySerializer(serializers.Serializer):
    id = serializers.UUIDField()
    name = serializers.CharField()
    slug = serializers.CharField()
    status = serializers.CharField()
    latest_version = serializers.IntegerField(allow_null=True)
    published_version = serializers.IntegerField(allow_null=True)
    updated_at = serializers.DateTimeField()
