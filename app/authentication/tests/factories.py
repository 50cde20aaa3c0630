import factory

from authentication.models import User


class UserFactory(factory.django.DjangoModelFactory):
    """
    Builds users through ``User.objects.create_user``.

    Each user gets a free-tier credit account from the post_save signal,
    so tests that need a different tier should use CreditAccountFactory.
    """

    class Meta:
        model = User
        skip_postgeneration_save = True

    email = factory.Sequence(lambda n: f"user{n}@example.com")
    name = factory.Faker("name")
    email_verified = False
    is_staff = False

    @classmethod
    def _create(cls, model_class, *args, **kwargs):
        kwargs.setdefault("password", "TestPass123!")
        return model_class.objects.create_user(**kwargs)
