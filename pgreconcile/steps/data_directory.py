from pgreconcile.state import RunContext, StepResult
from pgreconcile.steps.base import Step

DATA_DIRECTORY_MODE = 0o700


class DataDirectoryProvisioner(Step):
    name = "data_directory"

    def apply(self, ctx: RunContext) -> StepResult:
        account = ctx.settings.SERVICE_ACCOUNT
        data_dir = ctx.state["data_dir"]
        changed = ctx.host.filesystem.create_directory(
            data_dir,
            owner=account,
            group=account,
            mode=DATA_DIRECTORY_MODE,
            recursive=True,
        )
        return self.result(changed)
